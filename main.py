'''
                ======================================================   MAIN PIPELINE MODULE   ==================================================
'''

"""
This is the primary pipeline script for the project. It orchestrates the end-to-end density clustering workflow, serving as the central entry point where
configuration parameters and workflow logic are put together.

Key responsibilities include:
- Importing project configuration settings (hyperparameters), utility routines, clustering and association modules.
- Loading the tabular record set and selecting the numeric columns used as the clustering space.
- Computing the sorted k-NN distance profile and choosing epsilon, either from the configured value or from the elbow heuristic.
- Running DBSCAN, reporting core / border / noise counts and evaluation metrics on non-noise points.
- Testing the held-out categorical columns for association with the clusters (chi-square or Fisher's exact test, chosen per table).
- Logging all major processing steps and results systematically to support transparency and auditability.

Usage:
    python main.py [path/to/records.csv]
"""



#   ================================================================= IMPORTS AND CONFIGURATION ============================================================================

from hyperparameters import *         # Import all analysis hyperparameters and pipeline flags
import utils                          # Import all utility functions (data loading, point preparation, DBSCAN block)
from imports import *                 # Import packages (pandas, numpy, etc.)
from clustering import *              # Import clustering method implementations
from exceptions import ClusteringError


logger = logging.getLogger('MAIN')


#   ====================================================================== DATA LOADING ====================================================================================

def load_data(path):
    """Load the record set and log its head for a quick sanity check."""
    records = utils.loading_data(path)
    logger.info("Loaded %d records with columns %s from %s", len(records), list(records.columns), path)
    logger.info(f"Records:\n{records.head()}\n")
    return records


#    ==================================================================== CLUSTERING AND EVALUATION =======================================================================

def run_pipeline(records: pd.DataFrame):
    """
    Run the stages enabled in RUN_FLAGS. A disabled stage skips its work; the profile is still
    computed when EPS is None because the elbow heuristic reads it.
    Returns the DensityAnalysis, or the NeighborDistanceProfile alone when DBSCAN is disabled.
    """
    if not utils.should_run("DBSCAN", RUN_ALL, RUN_FLAGS):
        if not utils.should_run("KNN_PROFILE", RUN_ALL, RUN_FLAGS):
            logger.info("No pipeline stage enabled; nothing to do.")
            return None
        X = utils.prepare_point_set(records, FEATURE_COLS, scale=SCALE_FEATURES)
        k = K_NEIGHBORS or MIN_PTS or default_min_pts(X.shape[1])
        profile = kdist_sorted(X, k=k, algorithm=NEIGHBOR_ALGORITHM, n_jobs=N_JOBS)
        choice = select_eps(profile, eps=EPS, method=ELBOW_METHOD)
        logger.info("Suggested eps for k=%d: %.4f (%s)", k, choice.eps, choice.method)
        return profile

    categorical_cols = CATEGORICAL_COLS if utils.should_run("ASSOCIATION", RUN_ALL, RUN_FLAGS) else None

    analysis = utils.run_density_analysis(
        records,
        feature_cols=FEATURE_COLS,
        categorical_cols=categorical_cols,
        eps=EPS,
        min_pts=MIN_PTS,
        k=K_NEIGHBORS,
        elbow_method=ELBOW_METHOD,
        scale=SCALE_FEATURES,
        min_expected=MIN_EXPECTED_COUNT,
        significance_threshold=SIGNIFICANCE_THRESHOLD,
        correction=MULTIPLE_TESTING_CORRECTION,
        yates=YATES_CORRECTION,
        n_resamples=FISHER_RESAMPLES,
        random_state=RANDOM_STATE,
        algorithm=NEIGHBOR_ALGORITHM,
        n_jobs=N_JOBS,
        max_points=MAX_POINTS,
        compute_profile=utils.should_run("KNN_PROFILE", RUN_ALL, RUN_FLAGS),
        compute_metrics=utils.should_run("METRICS", RUN_ALL, RUN_FLAGS),
        logger=logger,
    )

    logger.info("Cluster sizes: %s, noise points: %d", analysis.assignment.cluster_sizes(), analysis.assignment.n_noise)
    if analysis.metrics is not None:
        logger.info("Silhouette %.4f | Calinski-Harabasz %.2f | Davies-Bouldin %.4f",
                    analysis.metrics.silhouette, analysis.metrics.calinski_harabasz, analysis.metrics.davies_bouldin)
    return analysis


def main(argv=None):
    utils.configure_logging()             # Set up standardized logging format for the pipeline
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else DATA_PATH

    try:
        records = load_data(path)
        run_pipeline(records)
    except ClusteringError as exc:
        logger.error("Analysis aborted: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
