"""
Alerting for failed catalog syncs.
Channels: log (always) and webhook (when a URL is configured).
"""
import logging
from typing import Dict, Any, Optional, List
import requests

from app.core.config import settings
from app.utils.time_helpers import utcnow

logger = logging.getLogger(__name__)


class AlertLevel:
    """Alert levels"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


_LOG_LEVELS = {
    AlertLevel.INFO: logging.INFO,
    AlertLevel.WARNING: logging.WARNING,
    AlertLevel.ERROR: logging.ERROR,
    AlertLevel.CRITICAL: logging.CRITICAL,
}


class AlertManager:
    """Central alert dispatcher"""

    def __init__(self, enabled: Optional[bool] = None, webhook_url: Optional[str] = None):
        self.enabled = settings.alerts_enabled if enabled is None else enabled
        self.webhook_url = settings.alert_webhook_url if webhook_url is None else webhook_url
        self.channels = self._load_channels()

    def _load_channels(self) -> Dict[str, bool]:
        return {
            'log': True,
            'webhook': bool(self.webhook_url),
        }

    def send_alert(
        self,
        title: str,
        message: str,
        level: str = AlertLevel.ERROR,
        context: Optional[Dict[str, Any]] = None,
        channels: Optional[List[str]] = None
    ) -> List[str]:
        """
        Send an alert to the enabled channels

        Args:
            title: Alert title
            message: Alert body
            level: Severity (info, warning, error, critical)
            context: Extra context (user_id, platform, task_id...)
            channels: Restrict to these channels (None = all enabled)

        Returns:
            Channels the alert was delivered to
        """
        if not self.enabled:
            logger.debug("Alerts disabled globally")
            return []

        if channels is None:
            channels = [ch for ch, enabled in self.channels.items() if enabled]

        alert_data = {
            'title': title,
            'message': message,
            'level': level,
            'context': context or {},
            'timestamp': utcnow().isoformat()
        }

        delivered = []
        for channel in channels:
            try:
                if channel == 'log':
                    self._send_log(alert_data)
                elif channel == 'webhook' and self.channels.get('webhook'):
                    self._send_webhook(alert_data)
                else:
                    continue
                delivered.append(channel)
            except requests.RequestException as e:
                logger.error(f"Error sending alert to {channel}: {e}", exc_info=True)
        return delivered

    def _send_log(self, alert_data: Dict[str, Any]):
        logger.log(
            _LOG_LEVELS.get(alert_data['level'], logging.ERROR),
            f"[ALERT] {alert_data['title']}: {alert_data['message']} {alert_data['context']}"
        )

    def _send_webhook(self, alert_data: Dict[str, Any]):
        response = requests.post(self.webhook_url, json=alert_data, timeout=10)
        response.raise_for_status()
        logger.info("Webhook alert sent successfully")


# Singleton instance
alert_manager = AlertManager()


def send_sync_error_alert(
    user_id: str,
    platform: str,
    method: str,
    error: str,
    error_code: Optional[str] = None,
    recoverable: bool = False,
    task_id: Optional[str] = None,
    manager: Optional[AlertManager] = None
) -> List[str]:
    """
    Alert for a sync run that ended in error

    Recoverable failures are sent as warnings; the rest as errors.
    """
    level = AlertLevel.WARNING if recoverable else AlertLevel.ERROR
    context = {
        'user_id': user_id,
        'platform': platform,
        'method': method,
        'error_code': error_code,
        'recoverable': recoverable,
        'task_id': task_id,
    }
    return (manager or alert_manager).send_alert(
        title=f"Catalog sync failed: {platform}",
        message=error,
        level=level,
        context=context
    )
