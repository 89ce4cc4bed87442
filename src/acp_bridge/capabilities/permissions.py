"""Permission-rule store answering ``permissionRule(s)/*`` agent requests."""

from __future__ import annotations

import json
import logging
import secrets
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
from pydantic import BaseModel, Field, TypeAdapter

from acp_bridge.methods import AcpMethods
from acp_bridge.types import JsonValue, PermissionRule, utc_now_iso

if TYPE_CHECKING:
    from acp_bridge.client import AcpClient

logger = logging.getLogger(__name__)

_RULE_FIELDS = ("toolName", "pattern", "description", "expiresAt")
_rules_adapter = TypeAdapter(list[PermissionRule])


class AddRuleParams(BaseModel):
    rule: dict[str, JsonValue] = Field(default_factory=dict)


class UpdateRuleParams(BaseModel):
    rule_id: str | None = Field(default=None, alias="ruleId")
    updates: dict[str, JsonValue] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class DeleteRuleParams(BaseModel):
    rule_id: str | None = Field(default=None, alias="ruleId")

    model_config = {"populate_by_name": True}


class PermissionRuleStore:
    """Keeps allow/deny rules in memory, optionally persisted as JSON.

    Args:
        path: JSON file to load from and save to. ``None`` keeps rules in
            memory only.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._rules: dict[str, PermissionRule] = {}

    @property
    def rules(self) -> list[PermissionRule]:
        return list(self._rules.values())

    def get(self, rule_id: str) -> PermissionRule | None:
        return self._rules.get(rule_id)

    async def load(self) -> None:
        """Load rules from the backing file if it exists."""
        if self._path is None:
            return
        path = anyio.Path(self._path)
        if not await path.exists():
            return
        rules = _rules_adapter.validate_json(await path.read_text(encoding="utf-8"))
        self._rules = {rule.id: rule for rule in rules}
        logger.debug("Loaded %d permission rules from %s", len(rules), self._path)

    async def save(self) -> None:
        if self._path is None:
            return
        payload = json.dumps([rule.to_wire() for rule in self._rules.values()], indent=2)
        path = anyio.Path(self._path)
        await path.parent.mkdir(parents=True, exist_ok=True)
        await path.write_text(payload, encoding="utf-8")

    async def add(self, rule: Mapping[str, JsonValue]) -> PermissionRule:
        """Add a rule; anything but ``action == "deny"`` becomes an allow rule."""
        now = utc_now_iso()
        fields: dict[str, JsonValue] = {
            key: rule[key] for key in _RULE_FIELDS if isinstance(rule.get(key), str)
        }
        new_rule = PermissionRule.model_validate(
            {
                **fields,
                "id": f"rule_{int(time.time() * 1000)}_{secrets.token_hex(3)}",
                "action": "deny" if rule.get("action") == "deny" else "allow",
                "createdAt": now,
                "updatedAt": now,
            }
        )
        self._rules[new_rule.id] = new_rule
        await self.save()
        return new_rule

    async def update(
        self, rule_id: str, updates: Mapping[str, JsonValue]
    ) -> PermissionRule | None:
        """Apply *updates*; ``id`` and ``createdAt`` are never changed.

        Returns:
            The updated rule, or None if *rule_id* is unknown.
        """
        current = self._rules.get(rule_id)
        if current is None:
            return None
        updated = PermissionRule.model_validate(
            {
                **current.to_wire(),
                **updates,
                "id": current.id,
                "createdAt": current.created_at,
                "updatedAt": utc_now_iso(),
            }
        )
        self._rules[rule_id] = updated
        await self.save()
        return updated

    async def delete(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None) is not None
        if removed:
            await self.save()
        return removed

    # ── Request handlers ──────────────────────────────────────────────────

    async def handle_list(self, params: JsonValue) -> dict[str, JsonValue]:
        return self._rules_result()

    async def handle_add(self, params: JsonValue) -> dict[str, JsonValue]:
        request = AddRuleParams.model_validate(params or {})
        await self.add(request.rule)
        return self._rules_result()

    async def handle_update(self, params: JsonValue) -> dict[str, JsonValue]:
        request = UpdateRuleParams.model_validate(params or {})
        if request.rule_id is not None:
            await self.update(request.rule_id, request.updates)
        return self._rules_result()

    async def handle_delete(self, params: JsonValue) -> dict[str, JsonValue]:
        request = DeleteRuleParams.model_validate(params or {})
        if request.rule_id is not None:
            await self.delete(request.rule_id)
        return self._rules_result()

    def _rules_result(self) -> dict[str, JsonValue]:
        return {"rules": [rule.to_wire() for rule in self._rules.values()]}


def register_permission_handlers(client: AcpClient, store: PermissionRuleStore) -> None:
    client.register_handler(AcpMethods.PERMISSION_RULES_LIST, store.handle_list)
    client.register_handler(AcpMethods.PERMISSION_RULE_ADD, store.handle_add)
    client.register_handler(AcpMethods.PERMISSION_RULE_UPDATE, store.handle_update)
    client.register_handler(AcpMethods.PERMISSION_RULE_DELETE, store.handle_delete)
