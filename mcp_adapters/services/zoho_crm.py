"""Zoho CRM operations expressed as tool handlers over ``UpstreamClient``."""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Dict, Mapping

from mcp_adapters.clients.upstream import UpstreamClient
from mcp_adapters.services.tool_executor import ToolHandler
from mcp_adapters.utils.http import RetryConfig, request_with_retry

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 5
DEFAULT_SORT_ORDER = "desc"
DEFAULT_SORT_BY = "Created_Time"


def _module_path(module: str) -> str:
    if not module:
        raise ValueError("module is required")
    return module[0].upper() + module[1:]


def _require(args: Mapping[str, Any], *names: str) -> None:
    missing = [name for name in names if args.get(name) in (None, "")]
    if missing:
        raise ValueError(f"Missing required argument(s): {', '.join(missing)}")


def _compact(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in fields.items() if value is not None}


def _paging(args: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "page": args.get("page", DEFAULT_PAGE),
        "per_page": args.get("per_page", DEFAULT_PER_PAGE),
        "sort_order": args.get("sort_order", DEFAULT_SORT_ORDER),
        "sort_by": args.get("sort_by", DEFAULT_SORT_BY),
    }


class ZohoCRMService:
    """Map Zoho CRM tool calls onto REST endpoints."""

    def __init__(
        self, upstream: UpstreamClient, *, retry_config: RetryConfig | None = None
    ) -> None:
        self._upstream = upstream
        self._retry = retry_config or RetryConfig()

    async def _read(self, access_token: str, endpoint: str, params=None) -> Any:
        return await request_with_retry(
            self._upstream.request,
            access_token,
            endpoint,
            params=params,
            retry_config=self._retry,
            method="GET",
        )

    async def _write(self, access_token: str, endpoint: str, method: str, body=None) -> Any:
        return await self._upstream.request(access_token, endpoint, method, body)

    async def get_records(self, access_token: str, module: str, args: Dict[str, Any]) -> Any:
        return await self._read(access_token, f"/{_module_path(module)}", _paging(args))

    async def get_activities(self, access_token: str, args: Dict[str, Any]) -> Any:
        return await self._read(access_token, "/Activities", _paging(args))

    async def get_record(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "module", "record_id")
        return await self._read(
            access_token, f"/{_module_path(args['module'])}/{args['record_id']}"
        )

    async def get_related_records(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "module", "record_id", "related_module")
        endpoint = (
            f"/{_module_path(args['module'])}/{args['record_id']}"
            f"/{_module_path(args['related_module'])}"
        )
        return await self._read(access_token, endpoint)

    async def search_records(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "module", "criteria")
        params = {
            "criteria": args["criteria"],
            "page": args.get("page", DEFAULT_PAGE),
            "per_page": args.get("per_page", DEFAULT_PER_PAGE),
        }
        return await self._read(
            access_token, f"/{_module_path(args['module'])}/search", params
        )

    async def create_lead(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "last_name")
        lead = {
            "Last_Name": args.get("last_name"),
            "First_Name": args.get("first_name"),
            "Email": args.get("email"),
            "Phone": args.get("phone"),
            "Company": args.get("company"),
            "Lead_Source": args.get("lead_source"),
            "Lead_Status": args.get("lead_status") or "Not Contacted",
        }
        return await self._write(access_token, "/Leads", "POST", {"data": [_compact(lead)]})

    async def create_contact(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "last_name")
        contact = {
            "Last_Name": args.get("last_name"),
            "First_Name": args.get("first_name"),
            "Email": args.get("email"),
            "Phone": args.get("phone"),
            "Account_Name": args.get("account_name"),
        }
        return await self._write(
            access_token, "/Contacts", "POST", {"data": [_compact(contact)]}
        )

    async def create_deal(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "deal_name")
        deal = {
            "Deal_Name": args.get("deal_name"),
            "Account_Name": args.get("account_name"),
            "Contact_Name": args.get("contact_name"),
            "Amount": args.get("amount"),
            "Closing_Date": args.get("closing_date"),
            "Stage": args.get("stage") or "Qualification",
            "Lead_Source": args.get("lead_source"),
            "Description": args.get("description"),
        }
        return await self._write(access_token, "/Deals", "POST", {"data": [_compact(deal)]})

    async def create_account(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "account_name")
        account = {
            "Account_Name": args.get("account_name"),
            "Website": args.get("website"),
            "Phone": args.get("phone"),
            "Fax": args.get("fax"),
            "Industry": args.get("industry"),
            "Annual_Revenue": args.get("annual_revenue"),
            "Employees": args.get("employees"),
            "Description": args.get("description"),
        }
        return await self._write(
            access_token, "/Accounts", "POST", {"data": [_compact(account)]}
        )

    async def update_record(self, access_token: str, module: str, args: Dict[str, Any]) -> Any:
        _require(args, "record_id")
        fields = {key: value for key, value in args.items() if key != "record_id"}
        record = {"id": args["record_id"], **fields}
        return await self._write(
            access_token, f"/{_module_path(module)}", "PUT", {"data": [record]}
        )

    async def delete_record(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "module", "record_id")
        return await self._write(
            access_token, f"/{_module_path(args['module'])}/{args['record_id']}", "DELETE"
        )

    async def convert_lead(self, access_token: str, args: Dict[str, Any]) -> Any:
        _require(args, "lead_id")
        conversion = {
            "id": args["lead_id"],
            "Account_Name": args.get("account_name"),
            "Contact_Name": args.get("contact_name"),
            "Deal_Name": args.get("deal_name"),
            "Amount": args.get("amount"),
            "Closing_Date": args.get("closing_date"),
        }
        return await self._write(
            access_token, "/Leads/actions/convert", "POST", {"data": [_compact(conversion)]}
        )

    def handlers(self) -> Dict[str, ToolHandler]:
        """Tool name to handler mapping consumed by ``ToolExecutor``."""
        table: Dict[str, ToolHandler] = {
            "get_activities": self.get_activities,
            "get_record": self.get_record,
            "get_related_records": self.get_related_records,
            "search_records": self.search_records,
            "create_lead": self.create_lead,
            "create_contact": self.create_contact,
            "create_deal": self.create_deal,
            "create_account": self.create_account,
            "delete_record": self.delete_record,
            "convert_lead": self.convert_lead,
        }
        for module in ("leads", "contacts", "deals", "accounts"):
            table[f"get_{module}"] = partial(self._get_module, module)
            table[f"update_{module[:-1]}"] = partial(self._update_module, module)
        return table

    async def _get_module(self, module: str, access_token: str, args: Dict[str, Any]) -> Any:
        return await self.get_records(access_token, module, args)

    async def _update_module(
        self, module: str, access_token: str, args: Dict[str, Any]
    ) -> Any:
        return await self.update_record(access_token, module, args)


__all__ = ["ZohoCRMService"]
