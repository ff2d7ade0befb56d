# CREATE FILE: services/pricing_service/config.py

import os
import json
import time
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional

import redis
import requests

from utils.logging import get_logger


DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '../../config/defaults.json')

# Used when config/defaults.json cannot be read
FALLBACK_FEE_SCHEDULE = {
    "base_delivery_fee": "1000",
    "service_fee": "1000",
    "shopping_time_minutes": 20,
    "units_surcharge_per_extra_unit": "100",
    "extra_units_threshold": 10,
    "capped_distance_fee": "3000",
    "distance_surcharge_per_km": "200",
    "currency_code": "RWF",
    "discounts_enabled": False
}

# Upstream system configuration keys -> fee schedule fields
UPSTREAM_KEYS = {
    "baseDeliveryFee": "base_delivery_fee",
    "serviceFee": "service_fee",
    "shoppingTime": "shopping_time_minutes",
    "unitsSurcharge": "units_surcharge_per_extra_unit",
    "extraUnits": "extra_units_threshold",
    "cappedDistanceFee": "capped_distance_fee",
    "distanceSurcharge": "distance_surcharge_per_km",
    "currency": "currency_code",
    "discounts": "discounts_enabled",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {UPSTREAM_KEYS.get(key, key): value for key, value in data.items()}


@dataclass(frozen=True)
class FeeSchedule:
    """System-wide fee schedule. Safe to cache."""
    base_delivery_fee: Decimal
    service_fee: Decimal
    shopping_time_minutes: int
    units_surcharge_per_extra_unit: Decimal
    extra_units_threshold: int
    capped_distance_fee: Decimal
    distance_surcharge_per_km: Decimal
    currency_code: str = "RWF"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeSchedule":
        """Build from defaults.json or upstream payloads (values may be strings)"""
        values = _normalize_keys(data)
        return cls(
            base_delivery_fee=Decimal(str(values["base_delivery_fee"])),
            service_fee=Decimal(str(values["service_fee"])),
            shopping_time_minutes=int(values["shopping_time_minutes"]),
            units_surcharge_per_extra_unit=Decimal(str(values["units_surcharge_per_extra_unit"])),
            extra_units_threshold=int(values["extra_units_threshold"]),
            capped_distance_fee=Decimal(str(values["capped_distance_fee"])),
            distance_surcharge_per_km=Decimal(str(values["distance_surcharge_per_km"])),
            currency_code=str(values.get("currency_code") or "RWF"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: str(value) if isinstance(value, Decimal) else value
                for key, value in asdict(self).items()}


@dataclass(frozen=True)
class LiveFlags:
    """Flags that must be read fresh on every pricing run."""
    discounts_enabled: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiveFlags":
        values = _normalize_keys(data)
        return cls(discounts_enabled=_as_bool(values.get("discounts_enabled", False)))


@dataclass(frozen=True)
class SystemFeeConfiguration:
    """Fee schedule and live flags as assembled for a single pricing run"""
    schedule: FeeSchedule
    flags: LiveFlags

    @property
    def discounts_enabled(self) -> bool:
        return self.flags.discounts_enabled

    def to_dict(self) -> Dict[str, Any]:
        return {**self.schedule.to_dict(), "discounts_enabled": self.flags.discounts_enabled}


def load_defaults(config_path: str = None) -> Dict[str, Any]:
    """Load pricing defaults from JSON file"""
    config_path = config_path or DEFAULT_CONFIG_PATH

    try:
        with open(config_path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        return dict(FALLBACK_FEE_SCHEDULE)


class FeeScheduleCache:
    """TTL cache for the fee schedule, Redis when reachable, else in-process"""

    CACHE_KEY = "pricing:fee_schedule"

    def __init__(self, use_redis: bool = True, default_ttl: int = 300):
        self.default_ttl = default_ttl
        self.logger = get_logger("fee_schedule_cache")
        self.local_entry = None
        self.cache_stats = {"hits": 0, "misses": 0, "errors": 0}
        self._lock = threading.RLock()

        self.redis_client = None
        if use_redis:
            try:
                redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379')
                self.redis_client = redis.from_url(redis_url, decode_responses=True)
                self.redis_client.ping()
                self.logger.info("Connected to Redis cache", redis_url=redis_url)
            except redis.RedisError as e:
                self.logger.warning("Redis connection failed, using local cache", error=e)
                self.redis_client = None

    def get(self) -> Optional[FeeSchedule]:
        with self._lock:
            try:
                if self.redis_client:
                    cached_data = self.redis_client.get(self.CACHE_KEY)
                    if cached_data:
                        self.cache_stats["hits"] += 1
                        return FeeSchedule.from_dict(json.loads(cached_data))

                if self.local_entry:
                    schedule, expiry = self.local_entry
                    if datetime.now() < expiry:
                        self.cache_stats["hits"] += 1
                        return schedule
                    self.local_entry = None

                self.cache_stats["misses"] += 1
                return None

            except (redis.RedisError, ValueError, KeyError, TypeError, InvalidOperation) as e:
                self.logger.error("Cache get error", error=e, cache_key=self.CACHE_KEY)
                self.cache_stats["errors"] += 1
                return None

    def set(self, schedule: FeeSchedule, ttl: int = None):
        ttl = ttl or self.default_ttl

        with self._lock:
            try:
                if self.redis_client:
                    self.redis_client.setex(self.CACHE_KEY, ttl, json.dumps(schedule.to_dict()))
                else:
                    self.local_entry = (schedule, datetime.now() + timedelta(seconds=ttl))
            except redis.RedisError as e:
                self.logger.error("Cache set error", error=e, cache_key=self.CACHE_KEY)
                self.cache_stats["errors"] += 1

    def invalidate(self):
        with self._lock:
            self.local_entry = None
            if self.redis_client:
                try:
                    self.redis_client.delete(self.CACHE_KEY)
                except redis.RedisError as e:
                    self.logger.error("Cache invalidate error", error=e)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_requests = self.cache_stats["hits"] + self.cache_stats["misses"]
            hit_rate = (self.cache_stats["hits"] / total_requests) if total_requests > 0 else 0

            return {
                **self.cache_stats,
                "hit_rate": round(hit_rate, 3),
                "redis_connected": self.redis_client is not None
            }


class ConfigProvider:
    """
    Supplies the system fee configuration for a pricing run.

    The fee schedule is cached; ``discounts_enabled`` is fetched on every call.
    Without a ``base_url`` the defaults file is used as the upstream.
    """

    def __init__(self, base_url: str = None, cache: FeeScheduleCache = None,
                 config_path: str = None, timeout: int = 5):
        self.base_url = base_url if base_url is not None else os.getenv("PRICING_CONFIG_URL")
        self.cache = cache or FeeScheduleCache(
            use_redis=bool(os.getenv("REDIS_URL")),
            default_ttl=int(os.getenv("CONFIG_CACHE_TTL_SECONDS", "300"))
        )
        self.config_path = config_path
        self.timeout = timeout
        self.logger = get_logger("config_provider")

    def _fetch(self, endpoint: str) -> Dict[str, Any]:
        start_time = time.time()
        response = requests.get(f"{self.base_url}{endpoint}", timeout=self.timeout)
        self.logger.api_call("config", endpoint, method="GET",
                             duration_ms=(time.time() - start_time) * 1000,
                             status_code=response.status_code)
        response.raise_for_status()
        data = response.json()
        # Upstream wraps the record as {"config": {...}}
        return data.get("config", data)

    def get_fee_schedule(self) -> FeeSchedule:
        cached = self.cache.get()
        if cached:
            return cached

        if not self.base_url:
            schedule = FeeSchedule.from_dict(load_defaults(self.config_path))
        else:
            try:
                schedule = FeeSchedule.from_dict(self._fetch("/system-configuration"))
            except (requests.RequestException, ValueError, KeyError, TypeError, InvalidOperation) as e:
                self.logger.warning("Config provider unavailable, using defaults", error=e)
                return FeeSchedule.from_dict(load_defaults(self.config_path))

        self.cache.set(schedule)
        return schedule

    def get_live_flags(self) -> LiveFlags:
        if not self.base_url:
            return LiveFlags.from_dict(load_defaults(self.config_path))

        try:
            return LiveFlags.from_dict(self._fetch("/system-configuration/flags"))
        except (requests.RequestException, ValueError) as e:
            # Discounts stay off when the flag cannot be read
            self.logger.warning("Live flags unavailable, discounts disabled", error=e)
            return LiveFlags(discounts_enabled=False)

    def get_configuration(self) -> SystemFeeConfiguration:
        with self.logger.operation_context("load_configuration"):
            return SystemFeeConfiguration(schedule=self.get_fee_schedule(), flags=self.get_live_flags())
