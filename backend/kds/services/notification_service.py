from typing import Dict, Any
import logging

from channels.layers import get_channel_layer
from asgiref.sync import async_to_sync

logger = logging.getLogger(__name__)


class KDSNotificationService:
    """Service for handling KDS WebSocket notifications, one channel group per outlet"""

    @property
    def channel_layer(self):
        # Resolved on each use so CHANNEL_LAYERS overrides in tests apply
        return get_channel_layer()

    @staticmethod
    def group_name(outlet_id) -> str:
        # Channels group names allow only ASCII alphanumerics, hyphens, underscores, periods
        sanitized = "".join(c if c.isalnum() or c in "-_." else "_" for c in str(outlet_id))
        return f"kds_outlet_{sanitized}"

    def notify_outlet(self, outlet_id, message_type: str, data: Dict[str, Any]):
        """Send notification to every kitchen display of an outlet"""
        channel_layer = self.channel_layer
        if not channel_layer:
            logger.warning("No channel layer available for notifications")
            return

        try:
            group_name = self.group_name(outlet_id)
            logger.debug(f"Sending {message_type} to outlet {outlet_id} (group: {group_name})")

            async_to_sync(channel_layer.group_send)(
                group_name,
                {
                    "type": "kds_notification",
                    "message_type": message_type,
                    "data": data,
                    "outlet_id": str(outlet_id),
                },
            )

        except Exception as e:
            logger.error(f"Error sending notification to outlet {outlet_id}: {e}")

    def round_fired_notification(self, outlet_id, data: Dict[str, Any]):
        """A new round of items reached the kitchen"""
        self.notify_outlet(outlet_id, "round_fired", dict(data, timestamp=self._get_timestamp()))

    def item_status_changed_notification(self, outlet_id, data: Dict[str, Any]):
        """An item moved along the kitchen lattice"""
        self.notify_outlet(outlet_id, "item_status_changed", dict(data, timestamp=self._get_timestamp()))

    def _get_timestamp(self):
        """Get current timestamp in ISO format"""
        from django.utils import timezone
        return timezone.now().isoformat()


# Global instance for easy access
notification_service = KDSNotificationService()
