"""
TopoJSON decoding and feature geometry helpers.

``topology_features`` turns a TopoJSON topology into GeoJSON features
(quantized arcs are delta-decoded and transformed back to lon/lat). Plain
GeoJSON FeatureCollections pass through unchanged. Centroids are computed
with shapely on the decoded GeoJSON geometry.
"""

import numpy as np
from shapely.geometry import shape


def _decode_arcs(topology: dict) -> list[np.ndarray]:
    transform = topology.get("transform")
    arcs = []
    for arc in topology.get("arcs", []):
        points = np.asarray(arc, dtype=float)[:, :2] if arc else np.empty((0, 2))
        if transform and len(points):
            points = np.cumsum(points, axis=0)
            points = points * np.asarray(transform["scale"]) + np.asarray(transform["translate"])
        arcs.append(points)
    return arcs


def _point(topology: dict, coords) -> list[float]:
    transform = topology.get("transform")
    if not transform:
        return [float(c) for c in coords]
    sx, sy = transform["scale"]
    tx, ty = transform["translate"]
    return [coords[0] * sx + tx, coords[1] * sy + ty]


def _line(arcs: list[np.ndarray], indices) -> list[list[float]]:
    points: list[list[float]] = []
    for i in indices:
        if not -len(arcs) <= i < len(arcs):
            raise ValueError(f"Arc index {i} out of range")
        arc = arcs[i] if i >= 0 else arcs[~i][::-1]
        part = arc.tolist()
        # consecutive arcs share their joining point
        if points and part:
            part = part[1:]
        points.extend(part)
    return points


def _ring(arcs: list[np.ndarray], indices) -> list[list[float]]:
    points = _line(arcs, indices)
    if points and points[0] != points[-1]:
        points.append(list(points[0]))
    return points


def _geometry(topology: dict, arcs: list[np.ndarray], obj: dict) -> dict | None:
    kind = obj.get("type")
    if kind is None:
        return None
    if kind == "GeometryCollection":
        return {
            "type": "GeometryCollection",
            "geometries": [
                g for g in (_geometry(topology, arcs, o) for o in obj.get("geometries", [])) if g
            ],
        }
    if kind == "Point":
        coordinates = _point(topology, obj["coordinates"])
    elif kind == "MultiPoint":
        coordinates = [_point(topology, c) for c in obj["coordinates"]]
    elif kind == "LineString":
        coordinates = _line(arcs, obj["arcs"])
    elif kind == "MultiLineString":
        coordinates = [_line(arcs, a) for a in obj["arcs"]]
    elif kind == "Polygon":
        coordinates = [_ring(arcs, a) for a in obj["arcs"]]
    elif kind == "MultiPolygon":
        coordinates = [[_ring(arcs, a) for a in polygon] for polygon in obj["arcs"]]
    else:
        raise ValueError(f"Unsupported TopoJSON geometry type: {kind}")
    return {"type": kind, "coordinates": coordinates}


def _feature(topology: dict, arcs: list[np.ndarray], obj: dict) -> dict:
    feature = {
        "type": "Feature",
        "properties": dict(obj.get("properties") or {}),
        "geometry": _geometry(topology, arcs, obj),
    }
    if "id" in obj:
        feature["id"] = obj["id"]
    return feature


def topology_features(topology: dict, object_name: str = "countries") -> list[dict]:
    """GeoJSON features for one object of a topology (or a FeatureCollection)."""
    if topology.get("type") == "FeatureCollection":
        return list(topology.get("features", []))
    if topology.get("type") != "Topology":
        raise ValueError("Expected a TopoJSON Topology or a GeoJSON FeatureCollection")

    objects = topology.get("objects", {})
    if object_name not in objects:
        raise ValueError(f"Topology has no '{object_name}' object")

    arcs = _decode_arcs(topology)
    obj = objects[object_name]
    if obj.get("type") == "GeometryCollection":
        return [_feature(topology, arcs, o) for o in obj.get("geometries", [])]
    return [_feature(topology, arcs, obj)]


def feature_centroid(feature: dict) -> tuple[float, float] | None:
    """Planar centroid (lon, lat) of a feature; None for empty geometry."""
    geometry = feature.get("geometry")
    if not geometry:
        return None
    centroid = shape(geometry).centroid
    if centroid.is_empty:
        return None
    return float(centroid.x), float(centroid.y)
