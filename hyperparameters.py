'''
             ============================================   HYPERPARAMETER SETTINGS FOR DENSITY CLUSTERING PIPELINE   ===========================================
'''


"""
This module defines all global experimental settings and configuration flags for the project pipeline. Parameters included here control key aspects of point preparation, density clustering and statistical stratification:

- Input data location and the numeric / categorical columns used by the analysis
- DBSCAN radius (epsilon) and minimum neighbor count (minPts)
- The k used for the k-NN distance profile and the elbow heuristic that suggests epsilon
- Expected-cell-count rule for choosing between the chi-square test and Fisher's exact test
- Reporting threshold for "worth investigating" associations and optional multiple-testing correction
- Execution flags for selectively enabling/disabling each pipeline stage

Centralizing these settings ensures reproducibility, transparency, and ease of experimentation. None of these values is hardcoded inside the algorithms: every
function receives them as explicit keyword arguments, and this module only supplies the defaults used by the main pipeline.

"""

# Path to the tabular record set; overridden by the first command line argument of main.py.
DATA_PATH = "data/clinical_records.csv"

# Numeric columns forming the clustering space (D = len(FEATURE_COLS)).
FEATURE_COLS = ["age", "bmi", "systolic_bp"]

# Held-out categorical columns tested for association with the resulting clusters.
CATEGORICAL_COLS = ["sex", "disease_stage", "outcome"]

# Standardize each dimension independently (zero mean, unit variance) before clustering.
SCALE_FEATURES = True


#   -----------------------------------------
#           DENSITY CLUSTERING (DBSCAN)
#   -----------------------------------------

# Neighborhood radius. None lets the elbow heuristic on the k-NN distance profile suggest a value.
EPS = None

# Minimum neighborhood population (point itself included). None falls back to the D+1 convention.
MIN_PTS = None

# k for the k-NN distance profile. None uses minPts, the usual pairing for epsilon selection.
K_NEIGHBORS = None

# Heuristic used when EPS is None: "kneedle" (max distance to the chord) or "second_derivative".
ELBOW_METHOD = "kneedle"

# scikit-learn neighbor search backend ("auto", "ball_tree", "kd_tree", "brute") and parallel jobs.
NEIGHBOR_ALGORITHM = "auto"
N_JOBS = None

# Optional guard against the quadratic worst case. None disables the check.
MAX_POINTS = None


#   -----------------------------------------
#        CATEGORICAL ASSOCIATION TESTING
#   -----------------------------------------

# Use the chi-square test only when every expected cell count reaches this value, Fisher's exact test otherwise.
MIN_EXPECTED_COUNT = 5

# Reporting threshold: p-values below it are flagged as worth investigating (not an error-rate control).
SIGNIFICANCE_THRESHOLD = 0.2

# statsmodels multipletests method ("bonferroni", "fdr_bh", ...). None applies no correction.
MULTIPLE_TESTING_CORRECTION = None

# Yates continuity correction for 2 x 2 chi-square tests.
YATES_CORRECTION = False

# Monte Carlo tables drawn for Fisher's exact test on tables larger than 2 x 2, and the seed that makes it reproducible.
FISHER_RESAMPLES = 10000
RANDOM_STATE = 42


#   -----------------------------------------
#           PIPELINE STAGE SELECTION
#   -----------------------------------------

# Run all stages if True; if False, use RUN_FLAGS below for selective activation.
RUN_ALL = False

RUN_FLAGS = {

    # Sorted k-NN distance profile and epsilon suggestion
    "KNN_PROFILE": True,

    # DBSCAN clustering with the chosen epsilon
    "DBSCAN": True,

    # Silhouette / Calinski-Harabasz / Davies-Bouldin on non-noise points
    "METRICS": True,

    # Chi-square / Fisher association tests between clusters and categorical columns
    "ASSOCIATION": True,

}
