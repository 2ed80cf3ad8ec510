from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass
class RouteMetric:
    requests: int = 0
    duration_ms_total: float = 0.0
    errors: int = 0

    def add(self, *, status_code: int, duration_ms: float) -> None:
        self.requests += 1
        self.duration_ms_total += duration_ms
        if status_code >= 400:
            self.errors += 1

    def as_dict(self) -> dict[str, float | int]:
        avg = self.duration_ms_total / self.requests if self.requests else 0.0
        return {
            "requests": self.requests,
            "errors": self.errors,
            "avg_duration_ms": round(avg, 2),
        }


class RequestMetrics:
    """Contadores en memoria por ruta y por restaurante (por proceso)."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], RouteMetric] = {}
        self._restaurantes: dict[str, RouteMetric] = {}
        self._lock = Lock()

    def observe(
        self,
        *,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        restaurante_id: str | None = None,
    ) -> None:
        with self._lock:
            self._routes.setdefault((endpoint, method), RouteMetric()).add(
                status_code=status_code, duration_ms=duration_ms
            )
            if restaurante_id:
                self._restaurantes.setdefault(restaurante_id, RouteMetric()).add(
                    status_code=status_code, duration_ms=duration_ms
                )

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {f"{method} {endpoint}": metric.as_dict() for (endpoint, method), metric in self._routes.items()}

    def snapshot_for_restaurante(self, restaurante_id: str) -> dict[str, float | int]:
        with self._lock:
            metric = self._restaurantes.get(restaurante_id)
            return metric.as_dict() if metric else RouteMetric().as_dict()

    def reset(self) -> None:
        with self._lock:
            self._routes.clear()
            self._restaurantes.clear()


request_metrics = RequestMetrics()
