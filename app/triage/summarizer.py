import logging
import re
from dataclasses import dataclass

from app.triage.entities import Category, Cluster, Severity

logger = logging.getLogger(__name__)

SUGGESTED_ACTIONS = {
    Category.CRASH: 'Investigate lifecycle/memory - check onResume handlers',
    Category.LOGIN: 'Check auth flow - token storage and session management',
    Category.PAYMENT: 'URGENT: Check payment gateway integration',
    Category.PERFORMANCE: 'Profile and optimize - check network/rendering',
    Category.UI: 'Review UI state management and theme persistence',
    Category.FEATURE_REQUEST: 'Add to backlog for prioritization',
    Category.BUG: 'Debug and fix - check logs for root cause',
    Category.OTHER: 'Investigate - gather more details from users',
}

USER_IMPACT = {
    Severity.P0: 'Critical - Service completely unusable',
    Severity.P1: 'Major - Core feature broken, affecting many users',
    Severity.P2: 'Moderate - Minor issue with workaround available',
    Severity.P3: 'Low - Enhancement or nice-to-have',
}

VERSION_PATTERN = re.compile(r'v\d+\.\d+\.\d+', re.IGNORECASE)
BROKEN_THING_PATTERN = re.compile(
    r"(?:the\s+)?(\w+(?:\s+\w+)?)\s+(?:is\s+)?(?:not working|broken|doesn't work|won't work)",
    re.IGNORECASE,
)


def _has_any(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


@dataclass(frozen=True)
class ClusterSummary:
    summary: str
    suggested_action: str
    user_impact: str


class ClusterSummarizer:
    """Deterministic one-line summaries for digest entries."""

    def summarize(self, cluster: Cluster) -> ClusterSummary:
        summary = ClusterSummary(
            summary=self.summary_line(cluster),
            suggested_action=SUGGESTED_ACTIONS.get(cluster.category, 'Investigation Required'),
            user_impact=USER_IMPACT.get(cluster.severity, 'User experience affected'),
        )
        logger.debug(f"Summarized cluster {cluster.id[:8]}: {summary.summary}")
        return summary

    def apply(self, cluster: Cluster) -> Cluster:
        summary = self.summarize(cluster)
        cluster.summary = summary.summary
        cluster.suggested_action = summary.suggested_action
        cluster.user_impact = summary.user_impact
        return cluster

    def summary_line(self, cluster: Cluster) -> str:
        original = cluster.representative_text or ''
        content = original.lower()
        count = cluster.count
        match = VERSION_PATTERN.search(original)
        version = f" [{match.group(0)}]" if match else ''

        if _has_any(content, 'background', 'foreground', 'resume', 'recents', 'multitask'):
            return f"Resume crash: switch apps or lock/unlock -> return to app -> force close ({count}){version}"

        if 'login' in content and 'crash' in content:
            return f"Login crash: tap Sign In -> app force closes ({count}){version}"

        if _has_any(content, 'crash', 'force close'):
            return f"App crash: unexpected force close ({count}){version}"

        if _has_any(content, 'twice', '2 attempts', 'double', 'second login', 'first login', 'first attempt'):
            return f"Double login bug: 1st login -> dashboard flashes -> back to login -> 2nd login works ({count})"

        if _has_any(content, 'theme', 'dark mode') and _has_any(
            content, 'broken', 'not working', "doesn't apply", 'no change', 'fails', 'never changes'
        ):
            return f"Theme toggle bug: enable Dark Mode -> toggle animates but UI stays light ({count})"

        if 'dark mode' in content and _has_any(content, 'feature', 'request', 'would love', 'add', 'want'):
            return f"Feature request: add dark mode to dashboard ({count})"

        if _has_any(content, 'docs', 'documentation'):
            return f"Docs outdated: API examples return errors, need update ({count})"

        if _has_any(content, 'ui', 'navigation', 'confusing'):
            return f"Navigation unclear: hard to find settings ({count})"

        if cluster.category == Category.BUG or _has_any(content, 'bug', 'broken', 'not working'):
            broken = BROKEN_THING_PATTERN.search(original)
            if broken:
                return f"{broken.group(1)} broken ({count})"

        first_sentence = re.split(r'[.!?]', original)[0].strip()
        if 20 < len(first_sentence) < 80:
            return f"{first_sentence} ({count})"

        return f"{cluster.category.value} issue - see reports ({count})"
