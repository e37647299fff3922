import math
from typing import Optional

import numpy as np

EARTH_RADIUS_KM = 6371.0088  # mean Earth radius


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def coordinates_available(lat: Optional[np.ndarray], lon: Optional[np.ndarray], num_zones: int) -> bool:
    """True only when every zone has a finite latitude and longitude."""
    if lat is None or lon is None:
        return False
    lat = np.asarray(lat, dtype=float)
    lon = np.asarray(lon, dtype=float)
    if lat.shape != (num_zones,) or lon.shape != (num_zones,):
        return False
    return bool(np.all(np.isfinite(lat)) and np.all(np.isfinite(lon)))


def compute_distance_matrix(lat: np.ndarray, lon: np.ndarray) -> np.ndarray:
    """
    Returns a (Z, Z) matrix of great-circle distances in km: matrix[i][j] is the
    distance between zone i and zone j, zero on the diagonal.
    """
    n = len(lat)
    matrix = np.zeros((n, n), dtype=float)
    for i in range(n):
        for j in range(n):
            if i != j:
                matrix[i, j] = haversine(lat[i], lon[i], lat[j], lon[j])
    return matrix
