'''
                                 ================================ IMPORTS MODULE =============================
'''

"""
This module serves as the centralized import hub for all external and core Python packages required by the project. It includes standard libraries (NumPy, pandas), scikit-learn neighbor search, scaling and clustering metrics, SciPy contingency-table tests, statsmodels multiple-testing helpers and typing helpers.

By consolidating all imports here, the codebase maintains consistency, eases dependency management, and simplifies environment setup and troubleshooting.
All analysis and clustering modules import from this file to ensure a single source of truth for package requirements.

"""


# ===================== CORE PYTHON & OS UTILITIES =====================
import numpy as np                    # Numerical computations and arrays
import pandas as pd                   # DataFrame operations and data manipulation
import time                           # Timing operations/performance measurement
import sys                            # Command line arguments for the entry point
from collections import deque         # FIFO frontier for cluster expansion


# ===================== LOGGING =====================
import logging                        # Standard Python event logging system


# ===================== SCALING & NEIGHBOR ALGORITHMS =====================
from sklearn.preprocessing import StandardScaler       # Per-dimension standardization (zero mean, unit variance)
from sklearn.neighbors import NearestNeighbors         # k-NN distances (epsilon estimation) and radius neighborhoods


# ===================== CLUSTERING METRICS/EVALUATION =====================
from sklearn.metrics import silhouette_score, calinski_harabasz_score, davies_bouldin_score  # Clustering performance metrics


# ===================== CATEGORICAL ASSOCIATION TESTS =====================
from scipy.stats import chi2_contingency                # Chi-square test of independence on r x c tables
from scipy.stats import fisher_exact                    # Fisher's exact test for 2 x 2 tables
from scipy.stats import MonteCarloMethod                # Seeded resampling for the r x c Fisher exact test
from scipy.stats.contingency import expected_freq       # Expected cell counts under independence
from statsmodels.stats.multitest import multipletests   # Multiple testing correction for p-values


# ===================== STRUCTURED DATA & TYPING =====================
from dataclasses import dataclass, asdict, replace       # Data classes for structured, immutable results
from enum import Enum                                      # Explicit enumerated point labels and test kinds
from typing import Iterable, List, Dict, Optional, Sequence  # Type hints for improved code clarity and static checks
