"""AI Agents package."""

from shop_ledger.agents.advisor import (
    FALLBACK_MESSAGE,
    MAX_DIGEST_LINES,
    NO_DATA_MESSAGE,
    NO_INSIGHT_MESSAGE,
    AdvisoryAgent,
    build_digest,
    build_prompt,
    format_digest_line,
)

__all__ = [
    "FALLBACK_MESSAGE",
    "MAX_DIGEST_LINES",
    "NO_DATA_MESSAGE",
    "NO_INSIGHT_MESSAGE",
    "AdvisoryAgent",
    "build_digest",
    "build_prompt",
    "format_digest_line",
]
