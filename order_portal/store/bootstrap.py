"""Seed data for a fresh fallback store."""

import copy
from typing import Any

SETTINGS_RECORD_ID = "global"

_INITIAL_DATA: dict[str, list[dict[str, Any]]] = {
    "users": [
        {
            "id": "1",
            "phone": "1234567890",
            "name": "Admin",
            "companyName": "Selective Trading",
            "email": "admin@selectivetrading.com",
            "address": "Admin Address",
            "isAdmin": True,
            "isActive": True,
        },
        {
            "id": "2",
            "phone": "9876543210",
            "name": "Test Customer",
            "companyName": "Test Company",
            "email": "customer@test.com",
            "address": "Test Address",
            "isAdmin": False,
            "isActive": True,
        },
    ],
    "products": [
        {
            "id": "1",
            "name": {"en": "Almond Milk", "ar": "حليب اللوز"},
            "slug": "almond",
            "image": "/images/almond.png",
            "isAvailable": True,
            "order": 1,
        },
        {
            "id": "2",
            "name": {"en": "Coconut Milk", "ar": "حليب جوز الهند"},
            "slug": "coconut",
            "image": "/images/coconut.png",
            "isAvailable": True,
            "order": 2,
        },
        {
            "id": "3",
            "name": {"en": "Soy Milk", "ar": "حليب الصويا"},
            "slug": "soy",
            "image": "/images/soy.png",
            "isAvailable": True,
            "order": 3,
        },
        {
            "id": "4",
            "name": {"en": "Oat Milk", "ar": "حليب الشوفان"},
            "slug": "oat",
            "image": "/images/oat.png",
            "isAvailable": True,
            "order": 4,
        },
        {
            "id": "5",
            "name": {"en": "Lactose Free Milk", "ar": "حليب خالي من اللاكتوز"},
            "slug": "lactose-free",
            "image": "/images/lactose-free.png",
            "isAvailable": True,
            "order": 5,
        },
    ],
    "orders": [],
    "notifications": [],
    "settings": [
        {
            "id": SETTINGS_RECORD_ID,
            "orderSettings": {"editTimeLimit": 2},
        },
    ],
}


def initial_data() -> dict[str, list[dict[str, Any]]]:
    """Fresh copy of the bootstrap collections."""
    return copy.deepcopy(_INITIAL_DATA)
