"""
Telegram HTML rendering for the morning digest and instant alerts.
"""

import logging
from datetime import datetime, timezone
from html import escape
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.triage.entities import Classification, Digest, DigestEntry, FeedbackItem, FixStatus, utcnow
from app.triage.lifecycle import BASELINE_DAYS

logger = logging.getLogger(__name__)

PRIORITY_EMOJIS = {'P0': '🔴', 'P1': '🟠', 'P2': '🟡', 'P3': '🟢'}
LEVEL_ORDER = {'P0': 0, 'P1': 1, 'P2': 2, 'P3': 3}
SEPARATOR = '━' * 16
SUMMARY_MARKER = '<b>Summary:</b>'

FeedbackLookup = Callable[[str], Optional[FeedbackItem]]


def resolve_timezone(name: Optional[str]):
    if not name or name.upper() == 'UTC':
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return timezone.utc


def time_ago(timestamp: datetime, now: Optional[datetime] = None) -> str:
    seconds = int(((now or utcnow()) - timestamp).total_seconds())
    if seconds < 60:
        return 'just now'
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    return f"{seconds // 86400} days ago"


def _clip(text: str, limit: int) -> str:
    text = text or ''
    return escape(text[:limit]) + ('...' if len(text) > limit else '')


def _headline(entry: DigestEntry) -> str:
    cluster = entry.cluster
    return escape(cluster.summary or cluster.representative_text[:50])


def _days_since_fix(entry: DigestEntry, now: datetime) -> int:
    deployed = entry.cluster.fix_deployed_date
    return int((now - deployed).total_seconds() // 86400) if deployed else 0


def _format_issues(entries: list[DigestEntry], feedback_count: int) -> str:
    # Level first, then score
    ordered = sorted(entries, key=lambda e: (LEVEL_ORDER.get(e.priority_level, 4), -e.priority_score))
    lines = [f"<b>📋 Issues</b> (from {feedback_count} feedbacks)\n"]
    for index, entry in enumerate(ordered, start=1):
        cluster = entry.cluster
        emoji = PRIORITY_EMOJIS.get(entry.priority_level, '⚪')
        lines.append(f"{index}. {emoji} <b>{entry.priority_level}</b> - {_headline(entry)} ({cluster.count} reports)")
        lines.append(f"   {escape(cluster.user_impact or 'User experience affected')}")
        lines.append(f"   → {escape(cluster.suggested_action)}")
        if cluster.sources:
            sources = ', '.join(source.value for source in cluster.sources[:3])
            more = '...' if len(cluster.sources) > 3 else ''
            lines.append(f"   Sources: {sources}{more}")
        lines.append('')
    return '\n'.join(lines)


def _format_monitoring(entries: list[DigestEntry], now: datetime) -> str:
    lines = ["<b>🔧 Monitoring - Fixes in Progress</b>\n"]
    for entry in entries:
        cluster = entry.cluster
        days = _days_since_fix(entry, now)
        avg_before = (cluster.reports_before_fix or cluster.count) / BASELINE_DAYS
        avg_after = (cluster.reports_after_fix or 0) / max(1, days)
        if avg_after < avg_before * 0.5:
            trend = '↓'
        elif avg_after > avg_before * 1.5:
            trend = '↑'
        else:
            trend = '→'
        emoji = PRIORITY_EMOJIS.get(entry.priority_level, '⚪')
        lines.append(f"{emoji} <b>{entry.priority_level}</b> - {_headline(entry)} ({cluster.count} reports) 🔧")
        lines.append(f"   Status: Fix Deployed (Day {days}/{cluster.rollout_period_days}) - Awaiting rollout")
        lines.append(f"   Reports trending {trend} {avg_before:.1f}/day → {avg_after:.1f}/day")
        if cluster.fix_deployed_version:
            lines.append(f"   Version: {escape(cluster.fix_deployed_version)}")
        lines.append("   → No action needed - monitoring\n")
    return '\n'.join(lines)


def _format_failed(entries: list[DigestEntry], now: datetime) -> str:
    lines = ["<b>🚨 Failed Fixes - Need Attention</b>\n"]
    for entry in entries:
        emoji = PRIORITY_EMOJIS.get(entry.priority_level, '⚪')
        lines.append(
            f"{emoji} <b>{entry.priority_level}</b> - {_headline(entry)} ({entry.cluster.count} reports) ⚠️"
        )
        lines.append("   Status: FIX FAILED - Still getting high volume")
        lines.append(f"   Original fix: {_days_since_fix(entry, now)} days ago")
        lines.append("   → URGENT: Fix didn't work, needs re-investigation\n")
    return '\n'.join(lines)


def _member(entry: DigestEntry, feedback_lookup: Optional[FeedbackLookup]) -> Optional[FeedbackItem]:
    if feedback_lookup is None or not entry.cluster.representative_id:
        return None
    return feedback_lookup(entry.cluster.representative_id)


def _format_individual(entries: list[DigestEntry], feedback_lookup: Optional[FeedbackLookup]) -> str:
    lines = [
        f"<b>Individual Support Cases</b> ({len(entries)} cases)\n",
        "<i>Single-user issues requiring individual attention:</i>\n",
    ]
    for entry in entries:
        item = _member(entry, feedback_lookup)
        text = item.content if item else entry.cluster.representative_text
        user = (item.author if item else None) or 'Unknown'
        source = item.source.value if item else 'unknown'
        lines.append(
            f"• <b>{escape(entry.cluster.category.value)}</b> ({entry.priority_level}) - "
            f"User: {escape(user)} via {escape(source)}"
        )
        lines.append(f'  "{_clip(text, 120)}"')
        if item and item.link:
            lines.append(f'  🔗 <a href="{escape(item.link)}">View feedback</a>')
        lines.append('')
    return '\n'.join(lines)


def _format_positive(entries: list[DigestEntry], feedback_lookup: Optional[FeedbackLookup]) -> str:
    lines = [
        SEPARATOR + '\n',
        f"<b>✅ What's Working Well</b> ({len(entries)} positive feedbacks)\n",
        "<i>User appreciation and positive feedback:</i>\n",
    ]
    for entry in entries:
        item = _member(entry, feedback_lookup)
        text = item.content if item else entry.cluster.representative_text
        user = (item.author if item else None) or 'Unknown'
        source = item.source.value if item else 'unknown'
        lines.append(f"• User: {escape(user)} via {escape(source)}")
        lines.append(f'  "{_clip(text, 100)}"\n')
    return '\n'.join(lines)


def format_morning_digest(
    digest: Digest,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
    feedback_lookup: Optional[FeedbackLookup] = None,
    feedback_count: Optional[int] = None,
) -> str:
    """Render a digest as Telegram HTML. The summary line always comes last."""
    now = now or utcnow()
    local = digest.generated_at.astimezone(resolve_timezone(tz_name))
    date = f"{local:%B} {local.day}, {local.year} at {local.hour % 12 or 12}:{local:%M %p} {local.tzname()}"

    if feedback_count is None:
        feedback_count = sum(entry.cluster.count for entry in digest.top_issues) or 'multiple'

    sections = [f"<b>MORNING DIGEST - {escape(date)}</b>\n"]
    open_issues = [e for e in digest.new_issues if e.cluster.fix_status in (FixStatus.OPEN, None)]
    if open_issues:
        sections.append(_format_issues(open_issues, feedback_count))
    if digest.monitoring:
        sections.append(_format_monitoring(digest.monitoring, now))
    if digest.failed_fixes:
        sections.append(_format_failed(digest.failed_fixes, now))
    if digest.individual_support:
        sections.append(_format_individual(digest.individual_support, feedback_lookup))
    if digest.positive_feedback:
        sections.append(_format_positive(digest.positive_feedback, feedback_lookup))

    sections.append(f"{SUMMARY_MARKER} {escape(digest.summary)}")
    return '\n'.join(sections)


def format_instant_alert(
    item: FeedbackItem,
    classification: Classification,
    now: Optional[datetime] = None,
) -> str:
    severity = classification.severity.value
    lines = [
        f"🚨 <b>INSTANT ALERT - {severity}</b>",
        '',
        f"💥 {escape(classification.one_line_summary or item.content[:100])}",
        f"<b>Reports:</b> 1 time {time_ago(item.timestamp, now)}",
        f"<b>Category:</b> {escape(classification.category.value)}",
        '',
        f"<b>Issue:</b> {_clip(item.content, 200)}",
        '',
        f"<b>Reasoning:</b> {escape(classification.reasoning)}",
        '',
        f"<b>Source:</b> {escape(item.source.value)} | <b>User:</b> {escape(item.author or 'Unknown')}",
    ]
    if item.link:
        lines.append(f'🔗 <a href="{escape(item.link)}">View feedback</a>')
    lines.append('')
    lines.append("<b>Action Needed:</b> Immediate investigation required")
    return '\n'.join(lines)
