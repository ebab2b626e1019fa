from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..domain.reference import Customer, Spare
from ..infra import api_client

logger = logging.getLogger("service_report_bot")


@dataclass
class ReferenceData:
    """Справочники заказчиков и запчастей; загружаются один раз на сессию формы."""

    customers: List[Customer] = field(default_factory=list)
    spares: List[Spare] = field(default_factory=list)

    def customer(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self.customers if c.id == customer_id), None)

    def spare(self, spare_id: str) -> Optional[Spare]:
        return next((s for s in self.spares if s.id == spare_id), None)

    def search_customers(self, text: str, limit: int = 10) -> List[Customer]:
        needle = text.strip().lower()
        if not needle:
            return self.customers[:limit]
        return [c for c in self.customers if needle in c.display_label.lower()][:limit]


async def load_reference_data(token: str) -> ReferenceData:
    """Загружает заказчиков и запчасти параллельно."""
    customers_raw, spares_raw = await asyncio.gather(
        asyncio.to_thread(api_client.list_customers, token),
        asyncio.to_thread(api_client.list_spares, token),
    )
    data = ReferenceData(
        customers=[Customer.from_api(c) for c in customers_raw if isinstance(c, dict)],
        spares=[Spare.from_api(s) for s in spares_raw if isinstance(s, dict)],
    )
    logger.info("Reference data loaded: %d customers, %d spares", len(data.customers), len(data.spares))
    return data
