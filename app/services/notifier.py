"""Risk notification rendering and dispatch."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from app.rules.models import AlertItem, RiskLevel, RuleConfig, RuleType

logger = logging.getLogger(__name__)

TITLE_PREFIX = {
    RuleType.DEADLINE_PROGRESS: "延期风险",
    RuleType.BLOCKED: "阻塞预警",
    RuleType.OVERDUE: "逾期预警",
}

RISK_LEVEL_LABEL = {
    RiskLevel.LOW: "低",
    RiskLevel.MEDIUM: "中",
    RiskLevel.HIGH: "高",
}


class DispatchFailureError(Exception):
    """Raised when a single notification could not be delivered."""

    pass


@dataclass(frozen=True)
class RenderedNotification:
    title: str
    message: str


def render_notification(alert: AlertItem, rule: RuleConfig) -> RenderedNotification:
    """Render the chat message for one (alert, rule) pair."""
    subject = alert.task_name or alert.task_id or alert.record_id
    title = f"{TITLE_PREFIX[rule.type]}：{subject}"

    parts = [
        f"项目：{alert.project}" if alert.project else None,
        f"截止：{alert.end_date}" if alert.end_date else None,
        f"剩余：{alert.days_left}天" if alert.days_left is not None else None,
        f"进度：{alert.progress:.0f}%",
        f"风险：{RISK_LEVEL_LABEL[alert.risk_level]}",
        f"阻塞：{alert.blocked}" if alert.blocked else None,
        f"原因：{alert.blocked_reason}" if alert.blocked_reason else None,
    ]

    return RenderedNotification(
        title=title,
        message="｜".join(part for part in parts if part),
    )


class NotificationDispatcher(ABC):
    """Abstract sender for risk notifications."""

    @abstractmethod
    async def send(self, alert: AlertItem, rule: RuleConfig) -> None:
        """Send one notification.

        Raises DispatchFailureError on failure.
        """
        pass

    async def aclose(self) -> None:
        """Release any held resources."""
        return None


class WebhookNotificationDispatcher(NotificationDispatcher):
    """Posts text messages to a Feishu custom bot webhook."""

    def __init__(
        self,
        webhook_url: str | None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, alert: AlertItem, rule: RuleConfig) -> None:
        if not self.webhook_url:
            raise DispatchFailureError("Notification webhook is not configured")

        rendered = render_notification(alert, rule)
        body = {
            "msg_type": "text",
            "content": {"text": f"{rendered.title}\n{rendered.message}"},
        }

        try:
            response = await self.client.post(self.webhook_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DispatchFailureError(f"Webhook request failed: {e}") from e
        if not isinstance(payload, dict):
            raise DispatchFailureError("Webhook returned a non-object body")

        # Older bot endpoints answer with StatusCode instead of code
        code = payload.get("code", payload.get("StatusCode", 0))
        if code != 0:
            raise DispatchFailureError(
                f"Webhook rejected message ({code}): {payload.get('msg', '')}"
            )

        logger.info(
            f"Sent risk notification: {rendered.title}",
            extra={"rule_key": rule.key, "record_id": alert.record_id},
        )

    async def aclose(self) -> None:
        await self.client.aclose()
