from datetime import datetime, timezone
from typing import Dict, Optional

from db.delivery import Delivery as DeliveryModel
from db.keg import Keg as KegModel
from db.variance import VarianceAlert as VarianceAlertModel, VarianceReport as VarianceReportModel


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def keg_to_schema(keg: KegModel) -> Dict:
    """Convert a Keg row to a KegRead dict"""
    return {
        "id": keg.id,
        "brewery_id": keg.brewery_id,
        "name": keg.name,
        "type": keg.type,
        "abv": keg.abv,
        "ibu": keg.ibu,
        "brew_date": keg.brew_date,
        "keg_size": keg.keg_size,
        "expected_pints": keg.expected_pints,
        "qr_code": keg.qr_code,
        "current_holder": keg.current_holder,
        "last_scan": keg.last_scan,
        "last_location": keg.last_location,
        "tap_position": keg.tap_position,
        "is_empty": bool(keg.is_empty),
        "pints_sold": int(keg.pints_sold or 0),
        "variance": int(keg.variance or 0),
        "variance_status": keg.variance_status or "NORMAL",
        "created_at": keg.created_at,
        "updated_at": keg.updated_at,
        "retired_at": keg.retired_at,
    }


def delivery_to_schema(delivery: DeliveryModel) -> Dict:
    """Convert a Delivery row (items loaded) to a DeliveryRead dict"""
    return {
        "id": delivery.id,
        "driver_id": delivery.driver_id,
        "restaurant_id": delivery.restaurant_id,
        "brewery_id": delivery.brewery_id,
        "keg_ids": delivery.keg_ids,
        "status": delivery.status,
        "driver_signature": delivery.driver_signature,
        "manager_signature": delivery.manager_signature,
        "blockchain_tx_hash": delivery.blockchain_tx_hash,
        "scheduled_at": delivery.scheduled_at,
        "accepted_at": delivery.accepted_at,
        "deposit_amount": float(delivery.deposit_amount) if delivery.deposit_amount is not None else None,
        "notes": delivery.notes,
        "created_at": delivery.created_at,
        "updated_at": delivery.updated_at,
        "items": [
            {
                "id": it.id,
                "keg_id": it.keg_id,
                "keg_name": it.keg_name,
                "keg_type": it.keg_type,
                "keg_size": it.keg_size,
                "deposit_value": float(it.deposit_value),
            }
            for it in (delivery.items or [])
        ],
    }


def alert_to_schema(alert: VarianceAlertModel) -> Dict:
    return {
        "id": alert.id,
        "type": alert.type,
        "severity": alert.severity,
        "title": alert.title,
        "description": alert.description,
        "current_value": alert.current_value,
        "expected_value": alert.expected_value,
        "variance": alert.variance,
        "variance_percentage": alert.variance_percentage,
        "impact": alert.impact,
        "recommendations": list(alert.recommendations or []),
        "confidence": alert.confidence,
        "status": alert.status,
        "notes": alert.notes,
        "resolution_notes": alert.resolution_notes,
        "assigned_to": alert.assigned_to,
        "priority": alert.priority,
        "keg_id": alert.keg_id,
        "restaurant_id": alert.restaurant_id,
        "detected_at": alert.detected_at,
        "updated_at": alert.updated_at,
        "resolved_at": alert.resolved_at,
    }


def report_to_schema(report: VarianceReportModel) -> Dict:
    return {
        "id": report.id,
        "keg_id": report.keg_id,
        "variance_amount": report.variance_amount,
        "status": report.status,
        "ai_analysis": dict(report.ai_analysis or {}),
        "resolved": bool(report.resolved),
        "resolved_at": report.resolved_at,
        "created_at": report.created_at,
    }
