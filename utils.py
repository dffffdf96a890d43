'''
                =========================================================   UTILITIES MODULE   =======================================================

'''


"""
This module provides the utility functions that support the density clustering pipeline. It includes routines for:

- Logging configuration shared by every module of the pipeline
- Data loading and construction of the numeric point matrix (column selection and per-dimension standardization)
- Stage selection through run flags
- The DBSCAN block: k-NN distance profile, epsilon selection, clustering, evaluation metrics and categorical association tests in one call

The `utils` module keeps the analysis reproducible: the caller owns the record set, every parameter is passed explicitly,
and each result is returned as plain structured data that a reporting layer can render without knowing the clustering internals.

"""

from imports import *
from exceptions import InvalidParameterError
from clustering import (
    NeighborDistanceProfile, ThresholdChoice, ClusterAssignment, DBSCANMetricsRow,
    as_point_matrix, default_min_pts, kdist_sorted, select_eps, dbscan, dbscan_metrics,
)
from association import AssociationResult, run_association_tests, summarize_associations


logger = logging.getLogger("UTILS")

# Configure logging for the pipeline with the specified verbosity level
def configure_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - [%(name)s] - %(levelname)s - %(message)s')

# Load CSV data from the given path, optionally accepting a row limit
def loading_data(path, num_row=None):
    if num_row is not None:
        return pd.read_csv(path, nrows=num_row)
    else:
        return pd.read_csv(path)

def should_run(name: str, run_all: bool, flags: dict[str, bool]) -> bool:
    return run_all or flags.get(name, False)

# Standardize each dimension independently to zero mean and unit variance (constant columns map to 0)
def standardize(X) -> np.ndarray:
    return StandardScaler().fit_transform(as_point_matrix(X))

# Select the clustering columns from the record set and return the (optionally scaled) point matrix
def prepare_point_set(df: pd.DataFrame, feature_cols: Sequence[str], scale: bool = True) -> np.ndarray:
    missing = [c for c in feature_cols if c not in df.columns]
    if missing:
        raise InvalidParameterError(f"Feature columns not found in the record set: {missing}")
    X = as_point_matrix(df[list(feature_cols)].to_numpy(dtype=float))
    if scale:
        X = standardize(X)
    logger.info("Prepared point set with %d points in %d dimensions (scaled=%s)", X.shape[0], X.shape[1], scale)
    return X


@dataclass
class DensityAnalysis:
    """
    Everything one DBSCAN block produces:
    - profile: sorted k-NN distances for the elbow plot (None when skipped)
    - threshold: the epsilon used and how it was chosen
    - assignment: core / border / noise labels and cluster ids
    - metrics: silhouette / Calinski-Harabasz / Davies-Bouldin on non-noise points (None when skipped)
    - associations: per categorical variable test results
    """
    profile: Optional[NeighborDistanceProfile]
    threshold: ThresholdChoice
    assignment: ClusterAssignment
    metrics: Optional[DBSCANMetricsRow]
    associations: Dict[str, AssociationResult]

    def association_summary(self) -> pd.DataFrame:
        return summarize_associations(self.associations)

    def to_dict(self) -> dict:
        return {
            "profile": None if self.profile is None else {"k": self.profile.k, "distances": self.profile.distances.tolist()},
            "threshold": asdict(self.threshold),
            "assignment": self.assignment.to_records(),
            "metrics": None if self.metrics is None else asdict(self.metrics),
            "associations": {v: r.to_dict() for v, r in self.associations.items()},
        }


# Run the DBSCAN block: k-distance profile for the elbow, epsilon choice, clustering, metrics and association tests
def run_density_analysis(
    df: pd.DataFrame,
    feature_cols: Sequence[str],
    categorical_cols: Optional[Sequence[str]] = None,
    eps: Optional[float] = None,
    min_pts: Optional[int] = None,
    k: Optional[int] = None,
    elbow_method: str = "kneedle",
    scale: bool = True,
    min_expected: float = 5,
    significance_threshold: float = 0.2,
    correction: Optional[str] = None,
    yates: bool = False,
    n_resamples: int = 10000,
    random_state: Optional[int] = 42,
    algorithm: str = "auto",
    n_jobs: Optional[int] = None,
    max_points: Optional[int] = None,
    skip_degenerate: bool = True,
    compute_profile: bool = True,
    compute_metrics: bool = True,
    logger: logging.Logger | None = None,
    prefix: str = "DBSCAN-Euclidean",
) -> DensityAnalysis:
    """
    1) Build the point matrix X from feature_cols (standardized when scale is True)
    2) Compute the k-NN distance profile (k defaults to min_pts, min_pts to D+1); with an explicit eps
       it is optional (compute_profile) and skipped when the data set is too small for k
    3) Use the explicit eps, or the elbow heuristic when eps is None
    4) Run DBSCAN and, when compute_metrics is True, compute metrics on non-noise points
    5) Test every categorical column for association with the clusters
    """
    log = logger or logging.getLogger("UTILS")
    start = time.time()

    X = prepare_point_set(df, feature_cols, scale=scale)
    n_points, n_dims = X.shape
    if max_points is not None and n_points > max_points:
        raise InvalidParameterError(f"{n_points} points exceed the configured limit of {max_points}")

    min_pts = default_min_pts(n_dims) if min_pts is None else min_pts
    k = min_pts if k is None else k

    profile = None
    if eps is None:
        profile = kdist_sorted(X, k=k, algorithm=algorithm, n_jobs=n_jobs)
    elif not compute_profile:
        log.info("%s: k-NN profile disabled, using eps=%s", prefix, eps)
    elif n_points < k + 1:
        log.info("%s: skipping %d-NN profile, only %d points", prefix, k, n_points)
    else:
        profile = kdist_sorted(X, k=k, algorithm=algorithm, n_jobs=n_jobs)

    threshold = select_eps(profile, eps=eps, method=elbow_method)
    assignment = dbscan(X, eps=threshold.eps, min_pts=min_pts, algorithm=algorithm, n_jobs=n_jobs)
    metrics = None
    if compute_metrics:
        metrics = dbscan_metrics(X, assignment)
        log.info(f"{prefix} metrics:\n{pd.DataFrame([asdict(metrics)])}")

    associations: Dict[str, AssociationResult] = {}
    if categorical_cols:
        associations = run_association_tests(
            assignment,
            df[list(categorical_cols)].reset_index(drop=True),
            min_expected=min_expected,
            significance_threshold=significance_threshold,
            correction=correction,
            yates=yates,
            n_resamples=n_resamples,
            random_state=random_state,
            skip_degenerate=skip_degenerate,
            logger=log,
        )
        log.info(f"{prefix} association results:\n{summarize_associations(associations)}")

    elapsed_time = time.time() - start
    log.info("%s finished in %d minutes and %d seconds", prefix, int(elapsed_time // 60), int(elapsed_time % 60))
    return DensityAnalysis(
        profile=profile,
        threshold=threshold,
        assignment=assignment,
        metrics=metrics,
        associations=associations,
    )
