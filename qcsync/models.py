"""Domain records exchanged between the sync layer and its callers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class QCStatus(str, Enum):
    PASS = "Pass"
    DAMAGE = "Damage"


@dataclass
class ProductMaster:
    """A product awaiting inspection, keyed by barcode."""

    barcode: str
    product_name: str
    cost_price: float = 0.0
    unit_price: float = 0.0
    stock: int = 0
    lot_no: str = ""
    product_type: str = ""
    image: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "barcode": self.barcode,
            "productName": self.product_name,
            "costPrice": self.cost_price,
            "unitPrice": self.unit_price,
            "stock": self.stock,
            "lotNo": self.lot_no,
            "productType": self.product_type,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductMaster":
        return cls(
            barcode=str(data.get("barcode") or ""),
            product_name=str(data.get("productName") or ""),
            cost_price=float(data.get("costPrice") or 0),
            unit_price=float(data.get("unitPrice") or 0),
            stock=int(data.get("stock") or 0),
            lot_no=str(data.get("lotNo") or ""),
            product_type=str(data.get("productType") or ""),
            image=str(data.get("image") or ""),
        )


@dataclass
class QCRecord:
    """One inspection outcome.  ``status`` is derived, never sent upstream."""

    id: str
    barcode: str
    product_name: str
    cost_price: float = 0.0
    selling_price: float = 0.0
    status: QCStatus = QCStatus.PASS
    reason: str = ""
    remark: str = ""
    image_urls: List[str] = field(default_factory=list)
    timestamp: str = ""
    inspector_id: str = ""
    lot_no: str = ""
    product_type: str = ""
    unit_price: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "productName": self.product_name,
            "costPrice": self.cost_price,
            "sellingPrice": self.selling_price,
            "status": self.status.value,
            "reason": self.reason,
            "remark": self.remark,
            "imageUrls": list(self.image_urls),
            "timestamp": self.timestamp,
            "inspectorId": self.inspector_id,
            "lotNo": self.lot_no,
            "productType": self.product_type,
            "unitPrice": self.unit_price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QCRecord":
        try:
            status = QCStatus(data.get("status") or QCStatus.PASS.value)
        except ValueError:
            status = QCStatus.PASS
        return cls(
            id=str(data.get("id") or ""),
            barcode=str(data.get("barcode") or ""),
            product_name=str(data.get("productName") or ""),
            cost_price=float(data.get("costPrice") or 0),
            selling_price=float(data.get("sellingPrice") or 0),
            status=status,
            reason=str(data.get("reason") or ""),
            remark=str(data.get("remark") or ""),
            image_urls=[str(url) for url in data.get("imageUrls") or []],
            timestamp=str(data.get("timestamp") or ""),
            inspector_id=str(data.get("inspectorId") or ""),
            lot_no=str(data.get("lotNo") or ""),
            product_type=str(data.get("productType") or ""),
            unit_price=float(data.get("unitPrice") or 0),
        )


@dataclass
class User:
    id: str
    username: str
    role: str = "user"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    status: str = "active"
    is_online: bool = False
    last_login: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "status": self.status,
            "is_online": self.is_online,
            "last_login": self.last_login,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            id=str(data.get("id") or ""),
            username=str(data.get("username") or ""),
            role=str(data.get("role") or "user"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            phone=data.get("phone"),
            status=str(data.get("status") or "active"),
            is_online=bool(data.get("is_online", False)),
            last_login=data.get("last_login"),
        )


@dataclass
class StatSummary:
    total_qc: int = 0
    pass_count: int = 0
    damage_count: int = 0
    total_value: float = 0.0


__all__ = ["QCStatus", "ProductMaster", "QCRecord", "User", "StatSummary"]
