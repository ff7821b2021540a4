import json
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from ..db import get_db_connection, dict_factory
from ..deps import get_registry, get_vendor_service


router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/health")
async def health_check():
    registry = get_registry()
    vendors = get_vendor_service().list_vendors()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "templates": {"builtin": len(registry.get_builtin()), "custom": len(registry.get_custom())},
        "vendors": {
            "total": len(vendors),
            "enabled": sum(1 for v in vendors if v.enabled),
            "system": sum(1 for v in vendors if v.is_system),
        },
    }


@router.get("/dashboard/stats")
async def get_dashboard_stats():
    conn = get_db_connection()
    conn.row_factory = dict_factory
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT COUNT(*) as total_jobs FROM jobs WHERE datetime(created_at) > datetime('now','-7 days')")
        total_jobs = cursor.fetchone()["total_jobs"]
        cursor.execute("SELECT COUNT(*) as completed_jobs FROM jobs WHERE status='completed' AND datetime(created_at) > datetime('now','-7 days')")
        completed_jobs = cursor.fetchone()["completed_jobs"]
        cursor.execute(
            """
            SELECT jr.vendor_id, jr.status, jr.result_json
            FROM job_results jr
            JOIN jobs j ON jr.job_id = j.id
            WHERE datetime(j.created_at) > datetime('now','-7 days')
            """
        )
        per_vendor: Dict[str, Dict[str, Any]] = {}
        for row in cursor.fetchall():
            stats = per_vendor.setdefault(row["vendor_id"], {"calls": 0, "success": 0, "elapsed_total": 0.0, "cost_total": 0.0})
            stats["calls"] += 1
            if row["status"] == "success":
                result = json.loads(row["result_json"])
                stats["success"] += 1
                stats["elapsed_total"] += float(result.get("elapsed") or 0.0)
                stats["cost_total"] += float(result.get("cost") or 0.0)
        vendors = []
        for vendor_id, stats in per_vendor.items():
            vendors.append({
                "vendor_id": vendor_id,
                "calls": stats["calls"],
                "success_rate": round(stats["success"] / stats["calls"] * 100, 1),
                "avg_elapsed": round(stats["elapsed_total"] / stats["success"], 4) if stats["success"] else None,
                "total_cost_usd": round(stats["cost_total"], 6),
            })
        total_calls = sum(s["calls"] for s in per_vendor.values())
        total_success = sum(s["success"] for s in per_vendor.values())
        return {
            "total_jobs": total_jobs,
            "completed_jobs": completed_jobs,
            "total_calls": total_calls,
            "success_rate": round(total_success / total_calls * 100, 1) if total_calls else 0.0,
            "vendors": sorted(vendors, key=lambda v: v["vendor_id"]),
        }
    finally:
        conn.close()
