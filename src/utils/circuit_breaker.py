"""
Circuit breaker and retry layer for worker invocations.

Every remote worker call goes through ``resilient_call``: a named circuit
breaker (one per endpoint and method) wrapped in exponential-backoff retry.
An open breaker fails fast with ``CircuitBreakerException`` and is never retried.
"""

import asyncio
import random
import time
from typing import Dict, Any, Optional, Callable, Tuple, Type
from enum import Enum
from dataclasses import dataclass

from src.utils.logging.framework import SmartLogger

logger = SmartLogger("a2a")


class CircuitBreakerState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing fast
    HALF_OPEN = "half_open"  # Testing if service is back


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5
    timeout: int = 30  # seconds in OPEN before probing
    half_open_max_calls: int = 3
    reset_timeout: int = 60


class CircuitBreakerException(Exception):
    """Raised when a call is rejected by an open (or saturated half-open) breaker"""
    pass


class CircuitBreaker:
    """Circuit breaker protecting one remote endpoint"""

    def __init__(self, name: str, config: CircuitBreakerConfig):
        self.name = name
        self.config = config
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = 0.0
        self.half_open_calls = 0
        self._lock = asyncio.Lock()

    def _transition(self, new_state: CircuitBreakerState, **context):
        old_state = self.state
        self.state = new_state
        logger.warning("circuit_breaker_state_change",
                       transition=f"{old_state.name} -> {new_state.name}",
                       breaker=self.name,
                       **context)

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute a coroutine function through the circuit breaker"""
        async with self._lock:
            current_time = time.time()

            if (self.state == CircuitBreakerState.OPEN and
                    current_time - self.last_failure_time >= self.config.timeout):
                self._transition(CircuitBreakerState.HALF_OPEN,
                                 time_in_open=round(current_time - self.last_failure_time, 1))
                self.half_open_calls = 0
                self.success_count = 0

            if self.state == CircuitBreakerState.OPEN:
                logger.warning("circuit_breaker_fail_fast",
                               breaker=self.name,
                               failure_count=self.failure_count)
                raise CircuitBreakerException(f"Circuit breaker {self.name} is open")

            if (self.state == CircuitBreakerState.HALF_OPEN and
                    self.half_open_calls >= self.config.half_open_max_calls):
                logger.warning("circuit_breaker_half_open_limit", breaker=self.name)
                raise CircuitBreakerException(f"Circuit breaker {self.name} half-open limit exceeded")

            if self.state == CircuitBreakerState.HALF_OPEN:
                self.half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception:
            async with self._lock:
                self._on_failure()
            raise

        async with self._lock:
            self._on_success()
        return result

    def _on_success(self):
        if self.state == CircuitBreakerState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.half_open_max_calls:
                successes = self.success_count
                self._transition(CircuitBreakerState.CLOSED, successes=successes)
                self.failure_count = 0
                self.success_count = 0
        elif self.state == CircuitBreakerState.CLOSED:
            self.failure_count = 0

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == CircuitBreakerState.CLOSED:
            if self.failure_count >= self.config.failure_threshold:
                self._transition(CircuitBreakerState.OPEN,
                                 failure_count=self.failure_count,
                                 threshold=self.config.failure_threshold)
        elif self.state == CircuitBreakerState.HALF_OPEN:
            # Any failure in half-open goes back to open
            self._transition(CircuitBreakerState.OPEN, successes=self.success_count)
            self.success_count = 0

    def reset(self):
        """Force the breaker back to CLOSED with clean counters"""
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.last_failure_time = 0.0

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "half_open_calls": self.half_open_calls
        }


class CircuitBreakerRegistry:
    """Registry for managing multiple circuit breakers"""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._default_config = CircuitBreakerConfig()

    def get_breaker(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """Get or create a circuit breaker"""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, config or self._default_config)
            logger.debug("circuit_breaker_created", breaker=name)
        return self._breakers[name]

    def remove_breaker(self, name: str):
        self._breakers.pop(name, None)

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_state() for name, breaker in self._breakers.items()}

    def reset_breaker(self, name: str):
        """Reset a circuit breaker to closed state"""
        if name in self._breakers:
            self._breakers[name].reset()
            logger.info("circuit_breaker_reset", breaker=name)

    def reset_all(self):
        for breaker in self._breakers.values():
            breaker.reset()


_registry: Optional[CircuitBreakerRegistry] = None


def get_circuit_breaker_registry() -> CircuitBreakerRegistry:
    """Get the global circuit breaker registry"""
    global _registry
    if _registry is None:
        _registry = CircuitBreakerRegistry()
    return _registry


def get_circuit_breaker(name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
    return get_circuit_breaker_registry().get_breaker(name, config)


class RetryConfig:
    """Configuration for retry mechanism"""

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0,
                 max_delay: float = 30.0, exponential_base: float = 2.0,
                 jitter: bool = True,
                 retry_on: Tuple[Type[BaseException], ...] = (Exception,)):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on


async def retry_with_exponential_backoff(func: Callable, config: RetryConfig,
                                         circuit_breaker: Optional[CircuitBreaker] = None,
                                         *args, **kwargs) -> Any:
    """Execute a coroutine function with retry and exponential backoff"""
    last_exception: Optional[BaseException] = None

    for attempt in range(config.max_attempts):
        try:
            if circuit_breaker:
                return await circuit_breaker.call(func, *args, **kwargs)
            return await func(*args, **kwargs)

        except CircuitBreakerException:
            raise

        except config.retry_on as e:
            last_exception = e

            if attempt == config.max_attempts - 1:
                break

            delay = min(
                config.base_delay * (config.exponential_base ** attempt),
                config.max_delay
            )
            # Jitter spreads retries from concurrent waves
            if config.jitter:
                delay *= (0.5 + random.random() * 0.5)

            logger.warning("retry_attempt_failed",
                           attempt=attempt + 1,
                           max_attempts=config.max_attempts,
                           retry_delay=round(delay, 2),
                           error=str(e),
                           error_type=type(e).__name__)
            await asyncio.sleep(delay)

    logger.error("retry_exhausted",
                 max_attempts=config.max_attempts,
                 error=str(last_exception),
                 error_type=type(last_exception).__name__)
    raise last_exception


async def resilient_call(func: Callable, circuit_breaker_name: str,
                         retry_config: Optional[RetryConfig] = None,
                         circuit_config: Optional[CircuitBreakerConfig] = None,
                         *args, **kwargs) -> Any:
    """Make a resilient call with both circuit breaker and retry"""
    circuit_breaker = get_circuit_breaker(circuit_breaker_name, circuit_config)
    return await retry_with_exponential_backoff(
        func, retry_config or RetryConfig(), circuit_breaker, *args, **kwargs
    )
