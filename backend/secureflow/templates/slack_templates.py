"""
Slack Block Kit Templates for analysis job notifications.

Each function returns a dict with 'blocks' and 'text' keys ready for sending.

Docs: https://api.slack.com/block-kit
"""

from typing import Any, Dict, Optional


def analysis_failed(
    project_id: str, commit_hash: str, error: str, link: Optional[str] = None
) -> Dict[str, Any]:
    """Slack template for analysis failure notification."""
    error_preview = error[:150] + "..." if len(error) > 150 else error

    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "🔴 Security Analysis Failed",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Project:*\n{project_id}"},
                {"type": "mrkdwn", "text": f"*Commit:*\n`{commit_hash[:8]}`"},
            ],
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Error:*\n```{error_preview}```",
            },
        },
    ]
    if link:
        blocks.append(
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"<{link}|View analysis>"}],
            }
        )

    return {
        "blocks": blocks,
        "text": f"Security analysis failed for project {project_id}",
    }


def analysis_completed(
    project_id: str, commit_hash: str, threat_level: str, score: Any
) -> Dict[str, Any]:
    """Slack template for a completed analysis with high-severity findings."""
    return {
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"⚠️ *Security Analysis*: threat level *{threat_level}* "
                    f"(score {score}) for `{commit_hash[:8]}` in project {project_id}",
                },
            }
        ],
        "text": f"Analysis of project {project_id} finished with threat level {threat_level}",
    }
