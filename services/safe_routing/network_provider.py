"""
Road network loading and the per-district network registry.

Graph documents come from the external map-data provider as JSON:

    {"nodes": [{"id": 1, "lat": 23.75, "lng": 90.39}, ...],
     "edges": [{"from": 1, "to": 2, "geometry": [[lat, lng], ...],
                "length": 120.5, "cost": 130.0, "modes": ["walk"]}, ...]}

Edges are directed. "cost" and "length" are optional (metres); without
either the edge costs its great-circle polyline length.
"""

import json
import logging
import math
import os
import threading
import time
from datetime import datetime, timezone
from typing import (
    Callable,
    Dict,
    FrozenSet,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
)

from models.network import ALL_MODES, Edge, Node, RoadNetwork, TravelMode
from services.safe_routing.errors import UpstreamDataUnavailable
from services.safe_routing.geometry import haversine_m, polyline_length_m
from services.safe_routing.regions import district_key, district_slug
from services.safe_routing.spatial_index import NetworkIndex

logger = logging.getLogger(__name__)


class NetworkProvider(Protocol):
    def load(self, district: str, mode: TravelMode) -> dict:
        """Return the raw graph document for a district and travel mode."""
        ...


class FileNetworkProvider:
    """
    Reads graph documents from a directory.

    Looks for "<district>_<mode>.json" first (every edge usable under that
    mode unless it lists its own modes), then "<district>.json" (edges list
    their modes, default all).
    """

    def __init__(self, directory: str):
        self.directory = directory

    def candidates(self, district: str, mode: TravelMode) -> List[str]:
        return [
            os.path.join(self.directory, f"{district_key(district, mode)}.json"),
            os.path.join(self.directory, f"{district_slug(district)}.json"),
        ]

    def load(self, district: str, mode: TravelMode) -> dict:
        for index, path in enumerate(self.candidates(district, mode)):
            if not os.path.exists(path):
                continue
            try:
                with open(path, "r", encoding="utf-8") as f:
                    document = json.load(f)
            except (OSError, ValueError) as e:
                raise UpstreamDataUnavailable(
                    f"Road network file {path} could not be read: {e}",
                    context={"path": path},
                ) from e
            if index == 0 and isinstance(document, dict):
                document.setdefault("modes", [TravelMode(mode).value])
            logger.info(f"Loaded road network document {path}")
            return document
        raise UpstreamDataUnavailable(
            f"No road network for district {district} ({TravelMode(mode).value})",
            context={"district": district, "mode": TravelMode(mode).value},
        )


class InMemoryNetworkProvider:
    """Serves graph documents keyed by district_key() or by district slug."""

    def __init__(self, documents: Optional[Mapping[str, dict]] = None):
        self.documents: Dict[str, dict] = dict(documents or {})

    def put(self, key: str, document: dict) -> None:
        self.documents[key] = document

    def load(self, district: str, mode: TravelMode) -> dict:
        key = district_key(district, mode)
        if key in self.documents:
            document = dict(self.documents[key])
            document.setdefault("modes", [TravelMode(mode).value])
            return document
        slug = district_slug(district)
        if slug in self.documents:
            return self.documents[slug]
        raise UpstreamDataUnavailable(
            f"No road network for district {district} ({TravelMode(mode).value})",
            context={"district": district, "mode": TravelMode(mode).value},
        )


def _parse_modes(raw, default: FrozenSet[TravelMode]) -> FrozenSet[TravelMode]:
    if raw is None:
        return default
    if isinstance(raw, str):
        raw = [raw]
    return frozenset(TravelMode(str(value).lower()) for value in raw)


def _base_cost(raw_edge: dict, geometry) -> float:
    for field_name in ("cost", "length"):
        value = raw_edge.get(field_name)
        if value is not None:
            return float(value)
    return polyline_length_m(geometry)


def heuristic_scale(nodes: Dict[int, Node], edges: List[Edge]) -> float:
    """
    Largest factor s <= 1 with s * chord(edge) <= base_cost(edge) for every edge.

    Scaling the great-circle distance by s keeps the A* heuristic a lower
    bound of any remaining path cost, whatever costs the provider assigned.
    """
    scale = 1.0
    for edge in edges:
        source = nodes[edge.source]
        target = nodes[edge.target]
        chord = haversine_m(source.lat, source.lng, target.lat, target.lng)
        if chord > 0.0:
            scale = min(scale, edge.base_cost / chord)
    return max(scale, 0.0)


def build_road_network(
    key: str,
    document: dict,
    *,
    district: Optional[str] = None,
    loaded_at: Optional[datetime] = None,
) -> RoadNetwork:
    """
    Turn a provider document into an immutable RoadNetwork.

    Raises:
        UpstreamDataUnavailable: the document is not a graph document
    """
    try:
        default_modes = _parse_modes(document.get("modes"), ALL_MODES)
        nodes: Dict[int, Node] = {}
        for raw in document["nodes"]:
            node = Node(id=int(raw["id"]), lat=float(raw["lat"]), lng=float(raw["lng"]))
            nodes[node.id] = node
        raw_edges = document["edges"]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise UpstreamDataUnavailable(
            f"Road network {key} is malformed: {e}", context={"key": key}
        ) from e

    edges: List[Edge] = []
    skipped = 0
    for raw in raw_edges:
        try:
            source = int(raw["from"])
            target = int(raw["to"])
        except (KeyError, TypeError, ValueError):
            skipped += 1
            continue
        if source not in nodes or target not in nodes:
            skipped += 1
            continue
        try:
            geometry = tuple(
                (float(lat), float(lng)) for lat, lng in raw.get("geometry") or ()
            )
            if len(geometry) < 2:
                geometry = (nodes[source].coordinate, nodes[target].coordinate)
            base_cost = _base_cost(raw, geometry)
            modes = _parse_modes(raw.get("modes"), default_modes)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping edge {source}->{target} in {key}: {e}")
            skipped += 1
            continue
        if not math.isfinite(base_cost) or base_cost < 0:
            logger.warning(
                f"Skipping edge {source}->{target} in {key}: cost {base_cost}"
            )
            skipped += 1
            continue
        edges.append(
            Edge(
                id=len(edges),
                source=source,
                target=target,
                geometry=geometry,
                base_cost=base_cost,
                modes=modes,
            )
        )

    if not nodes:
        raise UpstreamDataUnavailable(
            f"Road network {key} has no nodes", context={"key": key}
        )

    adjacency: Dict[int, List[int]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.id)

    network = RoadNetwork(
        key=key,
        nodes=nodes,
        edges=tuple(edges),
        adjacency={node_id: tuple(ids) for node_id, ids in adjacency.items()},
        index=NetworkIndex(nodes, edges),
        heuristic_scale=heuristic_scale(nodes, edges),
        loaded_at=loaded_at or datetime.now(timezone.utc),
        district=district,
        stats={"nodes": len(nodes), "edges": len(edges), "skipped_edges": skipped},
    )
    logger.info(
        f"Built road network {key}: {len(nodes)} nodes, {len(edges)} edges "
        f"({skipped} skipped), heuristic scale {network.heuristic_scale:.3f}"
    )
    return network


class NetworkRegistry:
    """
    Per-district cache of immutable road networks.

    Readers take a reference under the lock and then work lock-free; a
    refresh builds the new network first and swaps the reference afterwards,
    so a request sees either the old graph or the new one.
    """

    def __init__(
        self,
        provider: NetworkProvider,
        *,
        attempts: int = 3,
        backoff_s: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.attempts = max(1, attempts)
        self.backoff_s = backoff_s
        self._sleep = sleep
        self._lock = threading.Lock()
        self._networks: Dict[Tuple[str, TravelMode], RoadNetwork] = {}

    def _load(self, district: str, mode: TravelMode) -> RoadNetwork:
        key = district_key(district, mode)
        last_error: Optional[UpstreamDataUnavailable] = None
        for attempt in range(self.attempts):
            try:
                document = self.provider.load(district, mode)
                return build_road_network(key, document, district=district)
            except UpstreamDataUnavailable as e:
                last_error = e
                if attempt + 1 < self.attempts:
                    delay = min(5.0, self.backoff_s * (2**attempt))
                    logger.warning(
                        f"Loading network {key} failed (attempt {attempt + 1}/"
                        f"{self.attempts}), retrying in {delay:.2f}s: {e.detail}"
                    )
                    self._sleep(delay)
        logger.error(f"Giving up on network {key}: {last_error.detail}")
        raise last_error

    def get(self, district: str, mode: TravelMode) -> RoadNetwork:
        slot = (district_slug(district), TravelMode(mode))
        with self._lock:
            network = self._networks.get(slot)
        if network is not None:
            return network
        network = self._load(district, mode)
        with self._lock:
            # Another request may have loaded it meanwhile; keep the first one
            return self._networks.setdefault(slot, network)

    def refresh(
        self, district: Optional[str] = None, mode: Optional[TravelMode] = None
    ) -> List[str]:
        """
        Reload networks and swap them in.

        Without arguments every loaded network is reloaded; district and mode
        narrow the selection. A named district + mode pair is loaded even if
        it was never requested before.

        Returns:
            keys of the refreshed networks
        """
        with self._lock:
            targets = [
                (network.district, slot[1])
                for slot, network in self._networks.items()
                if (district is None or slot[0] == district_slug(district))
                and (mode is None or slot[1] == TravelMode(mode))
            ]
        if not targets and district is not None and mode is not None:
            targets = [(district, TravelMode(mode))]

        refreshed = []
        for name, target_mode in targets:
            network = self._load(name, target_mode)
            with self._lock:
                self._networks[(district_slug(name), target_mode)] = network
            refreshed.append(network.key)
        logger.info(f"Refreshed {len(refreshed)} road networks: {refreshed}")
        return refreshed

    def loaded(self) -> List[str]:
        with self._lock:
            return sorted(network.key for network in self._networks.values())
