'''
              =====================================================   DENSITY CLUSTERING MODULE   ====================================================

'''


'''
This module provides the neighbor-distance engine, the epsilon selection helper and the DBSCAN clustering engine used by the pipeline.

Provided building blocks:
 - k-th nearest neighbor distance profile (sorted, self excluded) for the elbow plot
 - Elbow heuristics (Kneedle-style max distance to chord, smoothed max second derivative) with an explicit epsilon override
 - DBSCAN (density-based spatial clustering) using 'euclidean' metric, labelling every point as core, border or noise
 - Silhouette / Calinski-Harabasz / Davies-Bouldin evaluation on non-noise points, single run or epsilon sweep
'''

from imports import *
from exceptions import InvalidParameterError, EmptyInputError, InsufficientPointsError


logger = logging.getLogger("CLUSTERING")

# Cluster id reserved for noise points; real clusters are numbered from 1 in discovery order.
NOISE_ID = 0

ELBOW_METHODS = ("kneedle", "second_derivative")

# Relative slack on the neighborhood radius so points at exactly eps (up to neighbor-search rounding) are included.
EPS_RTOL = 1e-9


# ------------------------------------------
#      DATA CONTAINERS AND INPUT CHECKS
# ------------------------------------------

class PointLabel(Enum):
    """Role of a point after the DBSCAN scan."""
    NOISE = "noise"
    CORE = "core"
    BORDER = "border"


@dataclass(frozen=True, eq=False)
class NeighborDistanceProfile:
    """
    Distance from every point to its k-th nearest other point, sorted ascending.
    Plotting rank against distance gives the k-distance graph used to read off epsilon.
    """
    k: int
    distances: np.ndarray

    def __post_init__(self):
        self.distances.setflags(write=False)

    def __len__(self) -> int:
        return len(self.distances)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"rank": np.arange(len(self.distances)), "distance": self.distances})


@dataclass(frozen=True)
class ThresholdChoice:
    """Epsilon handed to the clustering engine, and where it came from."""
    eps: float
    index: Optional[int]
    method: str
    overridden: bool


@dataclass(frozen=True, eq=False)
class ClusterAssignment:
    """
    Result of one DBSCAN run for a fixed (eps, min_pts) pair.
    - cluster_ids: one entry per point, NOISE_ID (0) for noise, 1..n_clusters otherwise
    - point_labels: PointLabel per point, aligned with cluster_ids
    """
    cluster_ids: np.ndarray
    point_labels: tuple
    eps: float
    min_pts: int

    def __post_init__(self):
        self.cluster_ids.setflags(write=False)

    def __len__(self) -> int:
        return len(self.cluster_ids)

    @property
    def n_clusters(self) -> int:
        return int(self.cluster_ids.max(initial=NOISE_ID))

    @property
    def n_noise(self) -> int:
        return int((self.cluster_ids == NOISE_ID).sum())

    def _indices_of(self, label: PointLabel) -> np.ndarray:
        return np.array([i for i, lab in enumerate(self.point_labels) if lab is label], dtype=int)

    @property
    def core_indices(self) -> np.ndarray:
        return self._indices_of(PointLabel.CORE)

    @property
    def border_indices(self) -> np.ndarray:
        return self._indices_of(PointLabel.BORDER)

    @property
    def noise_indices(self) -> np.ndarray:
        return self._indices_of(PointLabel.NOISE)

    def cluster_sizes(self) -> Dict[int, int]:
        """Number of points per cluster id, noise excluded."""
        ids, counts = np.unique(self.cluster_ids[self.cluster_ids != NOISE_ID], return_counts=True)
        return {int(c): int(n) for c, n in zip(ids, counts)}

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "index": np.arange(len(self.cluster_ids)),
            "label": [lab.value for lab in self.point_labels],
            "cluster_id": self.cluster_ids,
        })

    def to_records(self) -> List[dict]:
        return self.to_frame().to_dict(orient="records")


def as_point_matrix(X) -> np.ndarray:
    """Return X as a float (N, D) matrix, rejecting empty or non-finite input."""
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise InvalidParameterError(f"Point set must be two-dimensional (N, D), got shape {X.shape}")
    if X.shape[0] == 0:
        raise EmptyInputError("Point set has zero points")
    if not np.isfinite(X).all():
        raise InvalidParameterError("Point set contains NaN or infinite coordinates")
    return X


def _check_positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
        raise InvalidParameterError(f"{name} must be an integer >= 1, got {value!r}")
    return int(value)


def _check_eps(eps) -> float:
    if isinstance(eps, bool) or not isinstance(eps, (int, float, np.integer, np.floating)):
        raise InvalidParameterError(f"eps must be a positive number, got {eps!r}")
    if not np.isfinite(eps) or eps <= 0:
        raise InvalidParameterError(f"eps must be a positive finite number, got {eps!r}")
    return float(eps)


# Conventional minPts for D-dimensional data: one more than the dimensionality.
def default_min_pts(n_dims: int) -> int:
    return _check_positive_int(n_dims, "n_dims") + 1


# ----------------------------------------------
#   k-NN DISTANCE PROFILE AND EPSILON SELECTION
# ----------------------------------------------

# Compute sorted k-nearest neighbor distances for each sample, useful for plotting the elbow and selecting DBSCAN epsilon parameter.
def kdist_sorted(
    X,
    k: Optional[int] = None,
    algorithm: str = "auto",
    n_jobs: Optional[int] = None,
) -> NeighborDistanceProfile:
    """
    Return the sorted distance from each sample to its k-th nearest other sample.
    k defaults to D+1. The query point itself is excluded, duplicates count as neighbors at distance 0.
    """
    X = as_point_matrix(X)
    n_points, n_dims = X.shape
    k = default_min_pts(n_dims) if k is None else _check_positive_int(k, "k")
    if n_points < k + 1:
        raise InsufficientPointsError(f"k={k} needs at least {k + 1} points, got {n_points}")

    # The query set is the fitted set, so column 0 is the point itself (or a duplicate at distance 0).
    nbrs = NearestNeighbors(n_neighbors=k + 1, algorithm=algorithm, n_jobs=n_jobs).fit(X)
    distances, _ = nbrs.kneighbors(X)
    kdist = np.sort(distances[:, k])

    logger.info("Computed %d-NN distance profile for %d points (range %.4f - %.4f)", k, n_points, kdist[0], kdist[-1])
    return NeighborDistanceProfile(k=k, distances=kdist)


def find_elbow(distances: Sequence[float], method: str = "kneedle") -> int:
    """
    Index of the point where the sorted distance curve turns from flat to steep.

    kneedle: normalizes both axes to [0, 1] and takes the point farthest below the chord
    joining the first and last points.
    second_derivative: moving-average smoothing followed by the largest second difference.
    A flat or very short profile has no elbow; the last index is returned.
    """
    if method not in ELBOW_METHODS:
        raise InvalidParameterError(f"Unknown elbow method {method!r}; expected one of {ELBOW_METHODS}")
    y = np.asarray(distances, dtype=float)
    n = len(y)
    if n == 0:
        raise EmptyInputError("Distance profile is empty")
    if n < 3 or y[-1] == y[0]:
        return n - 1

    if method == "kneedle":
        x_norm = np.linspace(0.0, 1.0, n)
        y_norm = (y - y[0]) / (y[-1] - y[0])
        return int(np.argmax(x_norm - y_norm))

    window = max(n // 100, 1)
    if n - window + 1 < 3:
        window = 1
    smoothed = np.convolve(y, np.ones(window) / window, mode="valid")
    second_deriv = np.diff(smoothed, n=2)
    elbow_idx = int(np.argmax(second_deriv)) + window // 2 + 1
    return min(elbow_idx, n - 1)


def select_eps(
    profile: NeighborDistanceProfile,
    eps: Optional[float] = None,
    method: str = "kneedle",
) -> ThresholdChoice:
    """
    Second phase of epsilon selection. An explicit eps always wins; otherwise the elbow
    heuristic picks the distance at the inflection of the profile.
    """
    if eps is not None:
        eps = _check_eps(eps)
        logger.info("Using caller supplied eps=%.4f", eps)
        return ThresholdChoice(eps=eps, index=None, method="manual", overridden=True)

    idx = find_elbow(profile.distances, method=method)
    value = float(profile.distances[idx])
    if value <= 0:
        positive = np.flatnonzero(profile.distances > 0)
        if positive.size == 0:
            raise InvalidParameterError("All k-NN distances are zero; no elbow exists, supply eps explicitly")
        idx = int(positive[0])
        value = float(profile.distances[idx])

    logger.info("Elbow heuristic '%s' suggests eps=%.4f at sorted index %d of %d", method, value, idx, len(profile))
    return ThresholdChoice(eps=value, index=idx, method=method, overridden=False)


# ----------------------------------------------
#   DBSCAN CLUSTERING using 'euclidean' metric
# ----------------------------------------------

@dataclass
class _ScanState:
    """Mutable traversal state owned by a single dbscan() call."""
    neighborhoods: List[np.ndarray]
    is_core: np.ndarray
    visited: np.ndarray
    cluster_ids: np.ndarray
    next_cluster_id: int = 1


# Epsilon neighborhood (inclusive, point itself included) of every point, indices in ascending order.
def eps_neighborhoods(
    X: np.ndarray,
    eps: float,
    algorithm: str = "auto",
    n_jobs: Optional[int] = None,
) -> List[np.ndarray]:
    # A profile value used as eps must still reach the neighbor that defined it; radius_neighbors and
    # kneighbors do not round distances identically.
    radius = eps * (1.0 + EPS_RTOL)
    nbrs = NearestNeighbors(radius=radius, algorithm=algorithm, n_jobs=n_jobs).fit(X)
    indices = nbrs.radius_neighbors(X, radius=radius, return_distance=False)
    return [np.sort(ind) for ind in indices]


def _expand_cluster(state: _ScanState, seed: int, cluster_id: int) -> None:
    """Breadth-first closure over density-reachable points; only core points extend the frontier."""
    state.cluster_ids[seed] = cluster_id
    frontier = deque([seed])

    while frontier:
        current = frontier.popleft()
        for neighbor in state.neighborhoods[current]:
            # Unassigned or provisional noise: becomes part of this cluster
            if state.cluster_ids[neighbor] == NOISE_ID:
                state.cluster_ids[neighbor] = cluster_id
            if state.visited[neighbor]:
                continue
            state.visited[neighbor] = True
            if state.is_core[neighbor]:
                frontier.append(neighbor)


def _scan(state: _ScanState) -> None:
    for i in range(len(state.neighborhoods)):
        if state.visited[i]:
            continue
        state.visited[i] = True
        if not state.is_core[i]:
            # Provisional noise, may still be claimed as a border point by a later cluster
            continue
        cluster_id = state.next_cluster_id
        state.next_cluster_id += 1
        _expand_cluster(state, i, cluster_id)


def dbscan(
    X,
    eps: float,
    min_pts: int,
    algorithm: str = "auto",
    n_jobs: Optional[int] = None,
) -> ClusterAssignment:
    """
    Run DBSCAN (euclidean) with points visited in ascending index order.
    Returns a ClusterAssignment; cluster ids follow discovery order starting at 1, noise is 0.
    min_pts larger than the number of points could only yield all noise and raises InvalidParameterError.
    """
    eps = _check_eps(eps)
    min_pts = _check_positive_int(min_pts, "min_pts")
    X = as_point_matrix(X)
    n_points = X.shape[0]
    if min_pts > n_points:
        raise InvalidParameterError(f"min_pts={min_pts} exceeds the number of points ({n_points})")

    neighborhoods = eps_neighborhoods(X, eps, algorithm=algorithm, n_jobs=n_jobs)
    state = _ScanState(
        neighborhoods=neighborhoods,
        is_core=np.array([len(nb) >= min_pts for nb in neighborhoods], dtype=bool),
        visited=np.zeros(n_points, dtype=bool),
        cluster_ids=np.full(n_points, NOISE_ID, dtype=int),
    )
    _scan(state)

    point_labels = tuple(
        PointLabel.NOISE if cid == NOISE_ID else (PointLabel.CORE if core else PointLabel.BORDER)
        for cid, core in zip(state.cluster_ids, state.is_core)
    )
    assignment = ClusterAssignment(
        cluster_ids=state.cluster_ids,
        point_labels=point_labels,
        eps=eps,
        min_pts=min_pts,
    )
    logger.info(
        "DBSCAN eps=%.4f, min_pts=%d: %d clusters, %d core, %d border, %d noise",
        eps, min_pts, assignment.n_clusters, len(assignment.core_indices),
        len(assignment.border_indices), assignment.n_noise,
    )
    return assignment


# ------------------------------------------
#        DBSCAN EVALUATION METRICS
# ------------------------------------------

@dataclass
class DBSCANMetricsRow:
    """
    Container for clustering metrics of one DBSCAN solution, computed on non-noise points:
    - silhouette: average silhouette score (range -1 to 1, higher is better)
    - calinski_harabasz: Calinski-Harabasz index (higher indicates better-defined clusters)
    - davies_bouldin: Davies-Bouldin index (lower indicates better clusters)
    Scores are NaN when fewer than two clusters (or too few clustered points) remain.
    """
    eps: float
    min_pts: int
    silhouette: float
    calinski_harabasz: float
    davies_bouldin: float
    n_clusters: int
    n_noise: int
    n_core: int
    n_border: int


def dbscan_metrics(X, assignment: ClusterAssignment) -> DBSCANMetricsRow:
    X = as_point_matrix(X)
    valid_mask = assignment.cluster_ids != NOISE_ID
    labels = assignment.cluster_ids[valid_mask]
    n_labels = np.unique(labels).size

    if 2 <= n_labels <= valid_mask.sum() - 1:
        sil = float(silhouette_score(X[valid_mask], labels))
        ch = float(calinski_harabasz_score(X[valid_mask], labels))
        dbi = float(davies_bouldin_score(X[valid_mask], labels))
    else:
        sil = ch = dbi = np.nan

    return DBSCANMetricsRow(
        eps=assignment.eps,
        min_pts=assignment.min_pts,
        silhouette=sil,
        calinski_harabasz=ch,
        davies_bouldin=dbi,
        n_clusters=assignment.n_clusters,
        n_noise=assignment.n_noise,
        n_core=len(assignment.core_indices),
        n_border=len(assignment.border_indices),
    )


# Run DBSCAN for a range of eps values and compute cluster evaluation metrics
def run_dbscan_metrics(
    X,
    eps_values: Iterable[float],
    min_pts: int,
    algorithm: str = "auto",
    n_jobs: Optional[int] = None,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Run DBSCAN for each value of eps, returning a DataFrame of metrics."""
    log = logger or logging.getLogger("CLUSTERING")
    X = as_point_matrix(X)

    rows: List[DBSCANMetricsRow] = []
    for eps in eps_values:
        log.info("DBSCAN clustering for eps=%.4f ...", eps)
        assignment = dbscan(X, eps=eps, min_pts=min_pts, algorithm=algorithm, n_jobs=n_jobs)
        rows.append(dbscan_metrics(X, assignment))

    return pd.DataFrame([asdict(r) for r in rows])
