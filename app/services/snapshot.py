"""Task snapshot providers.

The task table is owned by a third-party sync (Feishu Bitable). Snapshots
may be partial or stale; callers must not assume freshness.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.rules.models import TaskRecord
from app.rules.records import as_text, extract_assignee

logger = logging.getLogger(__name__)

# Bitable column names of the project task table
FIELD = {
    "task_id": "任务ID",
    "name": "任务名称",
    "status": "状态",
    "assignee": "负责人",
    "start_date": "开始时间",
    "end_date": "截止时间",
    "progress": "进度",
    "project": "所属项目",
    "blocked": "是否阻塞",
    "blocked_reason": "阻塞原因",
    "risk_level": "风险等级",
    "milestone": "里程碑",
}

# Refresh the tenant token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60


class SnapshotUnavailableError(Exception):
    """Raised when the task snapshot cannot be fetched."""

    pass


class TaskSnapshotProvider(ABC):
    """Abstract source of task records."""

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def fetch(self, project: str | None = None) -> list[TaskRecord]:
        """Return the current task records, optionally for one project.

        Raises SnapshotUnavailableError on failure.
        """
        pass

    async def aclose(self) -> None:
        """Release any held resources."""
        return None


def record_from_bitable(item: dict[str, Any]) -> TaskRecord | None:
    """Map one Bitable record to a TaskRecord.

    Returns None for rows without a record id, which cannot be tracked.
    """
    record_id = as_text(item.get("record_id")).strip()
    if not record_id:
        return None

    fields = item.get("fields") or {}
    milestone = fields.get(FIELD["milestone"])
    risk_hint = as_text(fields.get(FIELD["risk_level"])).strip()

    return TaskRecord(
        record_id=record_id,
        task_id=as_text(fields.get(FIELD["task_id"])),
        name=as_text(fields.get(FIELD["name"])),
        assignee=extract_assignee(fields.get(FIELD["assignee"])),
        project=as_text(fields.get(FIELD["project"])),
        status=as_text(fields.get(FIELD["status"])),
        start_date=fields.get(FIELD["start_date"]),
        end_date=fields.get(FIELD["end_date"]),
        progress=fields.get(FIELD["progress"]),
        is_milestone=milestone is True or as_text(milestone) == "是",
        blocked=as_text(fields.get(FIELD["blocked"])),
        blocked_reason=as_text(fields.get(FIELD["blocked_reason"])),
        risk_level_hint=risk_hint or None,
    )


class FeishuSnapshotProvider(TaskSnapshotProvider):
    """Reads the project task table through the Feishu Open API."""

    def __init__(
        self,
        base_url: str,
        app_id: str | None,
        app_secret: str | None,
        app_token: str | None,
        table_id: str | None,
        page_size: int = 500,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.app_secret = app_secret
        self.app_token = app_token
        self.table_id = table_id
        self.page_size = page_size
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return all([self.app_id, self.app_secret, self.app_token, self.table_id])

    async def fetch(self, project: str | None = None) -> list[TaskRecord]:
        if not self.configured:
            raise SnapshotUnavailableError("Feishu task table is not configured")

        try:
            items = await self._list_all_records()
        except httpx.HTTPError as e:
            raise SnapshotUnavailableError(f"Feishu request failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise SnapshotUnavailableError(f"Unexpected Feishu response: {e}") from e

        records = []
        skipped = 0
        for item in items:
            record = record_from_bitable(item)
            if record is None:
                skipped += 1
                continue
            records.append(record)

        if skipped:
            logger.warning(f"Skipped {skipped} task rows without a record id")

        project = (project or "").strip()
        if project:
            records = [record for record in records if record.project == project]

        return records

    async def _tenant_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        response = await self.client.post(
            f"{self.base_url}/auth/v3/tenant_access_token/internal",
            json={"app_id": self.app_id, "app_secret": self.app_secret},
        )
        payload = self._check(response)

        self._token = payload["tenant_access_token"]
        expires_in = int(payload.get("expire", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        return self._token

    async def _list_all_records(self) -> list[dict[str, Any]]:
        token = await self._tenant_token()
        url = f"{self.base_url}/bitable/v1/apps/{self.app_token}/tables/{self.table_id}/records"
        params: dict[str, Any] = {
            "page_size": self.page_size,
            "field_names": json.dumps(list(FIELD.values()), ensure_ascii=False),
        }

        items: list[dict[str, Any]] = []
        while True:
            response = await self.client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            data = self._check(response).get("data") or {}
            if not isinstance(data, dict):
                raise SnapshotUnavailableError("Feishu returned a malformed record page")
            page = data.get("items") or []
            if not isinstance(page, list) or not all(isinstance(item, dict) for item in page):
                raise SnapshotUnavailableError("Feishu returned a malformed record page")
            items.extend(page)

            page_token = data.get("page_token")
            if not data.get("has_more") or not page_token:
                return items
            params["page_token"] = page_token

    def _check(self, response: httpx.Response) -> dict[str, Any]:
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise SnapshotUnavailableError(
                f"Feishu returned a non-object body: {type(payload).__name__}"
            )
        if payload.get("code", 0) != 0:
            raise SnapshotUnavailableError(
                f"Feishu error {payload.get('code')}: {payload.get('msg', '')}"
            )
        return payload

    async def aclose(self) -> None:
        await self.client.aclose()
