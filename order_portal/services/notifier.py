"""
Customer notification emission.

Order operations announce transitions through a ``Notifier``. Delivery
(push, polling, e-mail) belongs to other components; the default
notifier only records bilingual notification entries for them to pick up.
"""

from typing import Protocol

from order_portal.core.logging import get_logger
from order_portal.services.orders.enums import NotificationKind
from order_portal.store.base import RecordStore

logger = get_logger(__name__)

TEMPLATES: dict[NotificationKind, dict[str, dict[str, str]]] = {
    NotificationKind.ORDER_CREATED: {
        "title": {"en": "Order Created", "ar": "تم إنشاء الطلب"},
        "message": {
            "en": "Your order #{order_number} has been created successfully",
            "ar": "تم إنشاء طلبك رقم #{order_number} بنجاح",
        },
    },
    NotificationKind.ORDER_UPDATED: {
        "title": {"en": "Order Updated", "ar": "تم تعديل الطلب"},
        "message": {
            "en": "Your order #{order_number} has been updated",
            "ar": "تم تعديل طلبك رقم #{order_number}",
        },
    },
    NotificationKind.ORDER_RECEIVED: {
        "title": {"en": "Order Received", "ar": "تم استلام الطلب"},
        "message": {
            "en": "Your order #{order_number} has been received",
            "ar": "تم استلام طلبك رقم #{order_number}",
        },
    },
}


class Notifier(Protocol):
    """Notification collaborator; failures must not affect the caller."""

    async def notify(
        self,
        user_id: str,
        kind: NotificationKind,
        related_order_id: str,
        order_number: str = "",
    ) -> None:
        ...


class StoreNotifier:
    """Write notification records into the ``notifications`` collection."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def notify(
        self,
        user_id: str,
        kind: NotificationKind,
        related_order_id: str,
        order_number: str = "",
    ) -> None:
        template = TEMPLATES[kind]
        await self.store.insert(
            "notifications",
            {
                "user": user_id,
                "type": kind.value,
                "title": dict(template["title"]),
                "message": {
                    lang: text.format(order_number=order_number)
                    for lang, text in template["message"].items()
                },
                "relatedOrder": related_order_id,
                "isRead": False,
            },
        )
        logger.debug(
            "Notification recorded",
            user=user_id,
            kind=kind.value,
            order_id=related_order_id,
        )
