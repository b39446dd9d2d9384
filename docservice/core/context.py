"""
Per-operation context: which tenant/document a call is for, and a logger
that tags every line with them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class ContextLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = self.extra or {}
        return f"[{extra.get('tenant', '')}] [{extra.get('doc_id', '')}] {msg}", kwargs


@dataclass(frozen=True)
class OperationContext:
    tenant: str
    doc_id: str = ""

    @property
    def logger(self) -> ContextLoggerAdapter:
        return ContextLoggerAdapter(logger, {"tenant": self.tenant, "doc_id": self.doc_id})

    def for_document(self, doc_id: str) -> OperationContext:
        return OperationContext(tenant=self.tenant, doc_id=doc_id)
