"""Entitlement storage.

Per account the store keeps a point balance in a hash and two passes as
independently expiring keys; the remaining lifetime of a pass key is the
pass. Every mutation is a single atomic operation on the store so that
concurrent requests of one account cannot both spend the same points.
"""

import asyncio
import time
from typing import Callable, Dict, Optional, Protocol

from config import ApplicationConfig
from models import (
    SECONDS_PER_DAY,
    ChargeKind,
    ChargePlan,
    EntitlementSnapshot,
    PassKind,
    seconds_to_days,
)
from utils import create_contextual_logger

from .redis_client import RedisClient

# Decrement by at most the current balance, never below zero.
# Returns the balance seen before the decrement.
_LUA_DECREMENT_FLOOR = r"""
local cur = tonumber(redis.call('HGET', KEYS[1], ARGV[1]) or '0')
if cur <= 0 then
  return 0
end
local dec = tonumber(ARGV[2])
if dec > cur then
  dec = cur
end
if dec > 0 then
  redis.call('HINCRBY', KEYS[1], ARGV[1], -dec)
end
return cur
"""

# Extend a pass from its remaining TTL. A missing key (-2) and a key
# without expiry (-1) both count as no pass, matching read_snapshot, so the
# extension starts from now and the key always leaves with an expiry.
# Returns the new remaining lifetime in seconds.
_LUA_EXTEND_PASS = r"""
local ttl = redis.call('TTL', KEYS[1])
if ttl < 0 then
  ttl = 0
end
local total = ttl + tonumber(ARGV[1])
redis.call('SET', KEYS[1], ARGV[2], 'EX', total)
return total
"""


class EntitlementStore(Protocol):
    """Data access for account entitlements."""

    async def read_snapshot(self, account_id: str) -> EntitlementSnapshot: ...

    async def apply_charge(self, account_id: str, plan: ChargePlan) -> int: ...

    async def extend_pass(self, account_id: str, kind: PassKind, days: int) -> int: ...

    async def create_account(self, account_id: str, initial_points: int, tier: int = 1) -> bool: ...

    async def grant_points(self, account_id: str, amount: int) -> int: ...

    async def set_tier(self, account_id: str, tier: int) -> None: ...


class RedisEntitlementStore:
    """Entitlements kept in Redis."""

    def __init__(self, config: ApplicationConfig, redis_client: RedisClient) -> None:
        self.config = config
        self.redis_client = redis_client
        self.logger = create_contextual_logger(__name__, service="entitlement_store")

    def _pass_key(self, account_id: str, kind: PassKind) -> str:
        if kind == PassKind.PLUS_DAYS:
            return f"{self.config.plus_pass_prefix}{account_id}"
        return f"{self.config.standard_pass_prefix}{account_id}"

    async def read_snapshot(self, account_id: str) -> EntitlementSnapshot:
        if not account_id:
            return EntitlementSnapshot.empty(account_id)

        points, tier, standard_ttl, plus_ttl = await self.redis_client.read_fields(
            [
                (self.config.points_hash, account_id),
                (self.config.tier_hash, account_id),
            ],
            [
                self._pass_key(account_id, PassKind.STANDARD_DAYS),
                self._pass_key(account_id, PassKind.PLUS_DAYS),
            ],
        )
        if points is None and tier is None and int(standard_ttl) < 0 and int(plus_ttl) < 0:
            return EntitlementSnapshot.empty(account_id)

        return EntitlementSnapshot(
            account_id=account_id,
            tier=min(max(int(tier if tier is not None else 1), 0), 3),
            points=max(int(points or 0), 0),
            standard_days_remaining=seconds_to_days(int(standard_ttl)),
            plus_days_remaining=seconds_to_days(int(plus_ttl)),
        )

    async def apply_charge(self, account_id: str, plan: ChargePlan) -> int:
        if plan.kind != ChargeKind.POINTS:
            current = await self.redis_client.hget_int(self.config.points_hash, account_id)
            return max(current or 0, 0)

        previous = await self.redis_client.run_script(
            _LUA_DECREMENT_FLOOR,
            keys=[self.config.points_hash],
            args=[account_id, plan.amount],
        )
        previous = int(previous)
        self.logger.info(
            "Points charged",
            access_code=account_id,
            amount=plan.amount,
            previous_points=previous,
            remaining_points=max(previous - plan.amount, 0),
        )
        return previous

    async def extend_pass(self, account_id: str, kind: PassKind, days: int) -> int:
        remaining = await self.redis_client.run_script(
            _LUA_EXTEND_PASS,
            keys=[self._pass_key(account_id, kind)],
            args=[days * SECONDS_PER_DAY, kind.value],
        )
        self.logger.info(
            "Pass extended",
            access_code=account_id,
            kind=kind.value,
            days=days,
            remaining_seconds=int(remaining),
        )
        return int(remaining)

    async def create_account(self, account_id: str, initial_points: int, tier: int = 1) -> bool:
        created = await self.redis_client.hset_if_absent(
            self.config.points_hash, account_id, initial_points
        )
        if created:
            await self.redis_client.hset_if_absent(self.config.tier_hash, account_id, tier)
        return created

    async def grant_points(self, account_id: str, amount: int) -> int:
        return await self.redis_client.hincrby(self.config.points_hash, account_id, amount)

    async def set_tier(self, account_id: str, tier: int) -> None:
        await self.redis_client.hset(self.config.tier_hash, account_id, tier)


class InMemoryEntitlementStore:
    """Entitlements held in process memory, for single-instance deployments.

    Atomicity comes from one ``asyncio.Lock``; the store must therefore only be
    used from a single event loop.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._points: Dict[str, int] = {}
        self._tiers: Dict[str, int] = {}
        self._passes: Dict[tuple, float] = {}

    def _remaining(self, account_id: str, kind: PassKind) -> int:
        expires_at: Optional[float] = self._passes.get((account_id, kind))
        if expires_at is None:
            return 0
        remaining = int(expires_at - self._clock())
        if remaining <= 0:
            del self._passes[(account_id, kind)]
            return 0
        return remaining

    async def read_snapshot(self, account_id: str) -> EntitlementSnapshot:
        async with self._lock:
            standard = self._remaining(account_id, PassKind.STANDARD_DAYS)
            plus = self._remaining(account_id, PassKind.PLUS_DAYS)
            known = account_id in self._points or account_id in self._tiers or standard or plus
            if not account_id or not known:
                return EntitlementSnapshot.empty(account_id)
            return EntitlementSnapshot(
                account_id=account_id,
                tier=self._tiers.get(account_id, 1),
                points=max(self._points.get(account_id, 0), 0),
                standard_days_remaining=seconds_to_days(standard),
                plus_days_remaining=seconds_to_days(plus),
            )

    async def apply_charge(self, account_id: str, plan: ChargePlan) -> int:
        async with self._lock:
            current = max(self._points.get(account_id, 0), 0)
            if plan.kind != ChargeKind.POINTS or current == 0:
                return current
            self._points[account_id] = current - min(plan.amount, current)
            return current

    async def extend_pass(self, account_id: str, kind: PassKind, days: int) -> int:
        async with self._lock:
            total = self._remaining(account_id, kind) + days * SECONDS_PER_DAY
            self._passes[(account_id, kind)] = self._clock() + total
            return total

    async def create_account(self, account_id: str, initial_points: int, tier: int = 1) -> bool:
        async with self._lock:
            if account_id in self._points:
                return False
            self._points[account_id] = initial_points
            self._tiers.setdefault(account_id, tier)
            return True

    async def grant_points(self, account_id: str, amount: int) -> int:
        async with self._lock:
            self._points[account_id] = self._points.get(account_id, 0) + amount
            return self._points[account_id]

    async def set_tier(self, account_id: str, tier: int) -> None:
        async with self._lock:
            self._tiers[account_id] = tier
