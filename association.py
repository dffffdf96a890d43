'''
                 =====================================================   CATEGORICAL ASSOCIATION MODULE   ====================================================

'''


"""
This module stratifies subjects by DBSCAN cluster and tests each held-out categorical variable for independence from cluster membership. It includes routines for:

- Building cluster x level contingency tables with noise points and missing values removed
- Choosing the test from the expected cell counts: chi-square when every expected count reaches the threshold, Fisher's exact test otherwise
- Fisher's exact test on 2 x 2 tables and its Freeman-Halton extension to r x c tables (SciPy, seeded resampling of tables with the observed margins)
- Flagging results below a caller-supplied reporting threshold, with an optional statsmodels multiple-testing correction that is never applied by default
- Summarizing the results as a DataFrame for the reporting layer

"""

from imports import *
from exceptions import InvalidParameterError, DegenerateTableError
from clustering import ClusterAssignment, NOISE_ID


logger = logging.getLogger("ASSOCIATION")


class HypothesisTest(Enum):
    """Test of independence applied to a contingency table."""
    CHI_SQUARE = "chi_square"
    FISHER_EXACT = "fisher_exact"


@dataclass(frozen=True, eq=False)
class AssociationResult:
    """
    Outcome of one independence test between cluster membership and a categorical variable.
    - table: rows are cluster ids (noise excluded), columns are category levels
    - statistic: chi-square statistic, odds ratio for a 2 x 2 Fisher test, observed-table probability for r x c Fisher
    - dof: degrees of freedom for chi-square, None for Fisher
    - min_expected: smallest expected cell count under independence (drives the test choice)
    """
    variable: str
    table: pd.DataFrame
    test: HypothesisTest
    statistic: float
    p_value: float
    dof: Optional[int]
    min_expected: float
    adjusted_p_value: Optional[float] = None
    worth_investigating: bool = False

    def to_dict(self) -> dict:
        return {
            "variable": self.variable,
            "test": self.test.value,
            "statistic": self.statistic,
            "p_value": self.p_value,
            "adjusted_p_value": self.adjusted_p_value,
            "dof": self.dof,
            "min_expected": self.min_expected,
            "worth_investigating": self.worth_investigating,
            "table": {str(level): {int(c): int(n) for c, n in counts.items()} for level, counts in self.table.to_dict().items()},
        }


# Cross-tabulate cluster ids against category levels, excluding noise points and missing values
def build_contingency_table(assignment: ClusterAssignment, values, name: Optional[str] = None) -> pd.DataFrame:
    values = values.reset_index(drop=True) if isinstance(values, pd.Series) else pd.Series(values)
    if len(values) != len(assignment):
        raise InvalidParameterError(
            f"Categorical column has {len(values)} values but the assignment covers {len(assignment)} points")
    name = name if name is not None else (values.name if values.name is not None else "level")

    frame = pd.DataFrame({"cluster_id": assignment.cluster_ids, "level": values})
    keep = (frame["cluster_id"] != NOISE_ID) & frame["level"].notna()
    frame = frame[keep]

    if frame.empty:
        table = pd.DataFrame(dtype=np.int64)
    else:
        table = pd.crosstab(frame["cluster_id"], frame["level"])
    if isinstance(values.dtype, pd.CategoricalDtype):
        # Keep unused levels visible so they are reported as degenerate instead of silently dropped
        table = table.reindex(columns=values.cat.categories, fill_value=0)
    table.index.name = "cluster_id"
    table.columns.name = name
    return table


def check_table(table: pd.DataFrame) -> None:
    """Raise DegenerateTableError when no test of independence can be computed on table."""
    name = table.columns.name
    if table.shape[0] < 2:
        raise DegenerateTableError(f"'{name}': fewer than 2 clusters remain after removing noise")
    if table.shape[1] < 2:
        raise DegenerateTableError(f"'{name}': fewer than 2 category levels remain after removing noise")
    empty_levels = [level for level, total in table.sum(axis=0).items() if total == 0]
    if empty_levels:
        raise DegenerateTableError(f"'{name}': levels {empty_levels} have zero count across retained clusters")


# Chi-square when every expected count under independence reaches min_expected, Fisher otherwise
def select_test(table, min_expected: float = 5) -> HypothesisTest:
    expected = expected_freq(np.asarray(table, dtype=float))
    if (expected >= min_expected).all():
        return HypothesisTest.CHI_SQUARE
    return HypothesisTest.FISHER_EXACT


def chi_square_test(table, yates: bool = False) -> tuple[float, float, int]:
    """Pearson chi-square test of independence with (rows-1)*(cols-1) degrees of freedom."""
    chi2, p, dof, _ = chi2_contingency(np.asarray(table), correction=yates)
    return float(chi2), float(p), int(dof)


def fisher_exact_test(table, n_resamples: int = 10000, random_state: Optional[int] = 42) -> tuple[float, float]:
    """
    Two-sided Fisher exact test. Returns (statistic, p_value).

    2 x 2 tables use SciPy's exact test (statistic is the odds ratio). Larger tables use SciPy's
    Freeman-Halton generalization (statistic is the null probability of the observed table); its
    p-value is drawn from n_resamples tables with the observed margins, seeded by random_state.
    """
    observed = np.asarray(table, dtype=np.int64)
    if observed.shape == (2, 2):
        res = fisher_exact(observed, alternative="two-sided")
        return float(res.statistic), float(min(res.pvalue, 1.0))

    res = fisher_exact(observed, method=MonteCarloMethod(n_resamples=n_resamples, rng=random_state))
    return float(res.statistic), float(res.pvalue)


def assess_association(
    assignment: ClusterAssignment,
    values,
    name: Optional[str] = None,
    min_expected: float = 5,
    significance_threshold: float = 0.2,
    yates: bool = False,
    n_resamples: int = 10000,
    random_state: Optional[int] = 42,
) -> AssociationResult:
    """Build the contingency table for one categorical variable and run the selected test."""
    if min_expected < 0:
        raise InvalidParameterError(f"min_expected must be >= 0, got {min_expected}")
    if not 0 < significance_threshold <= 1:
        raise InvalidParameterError(f"significance_threshold must be in (0, 1], got {significance_threshold}")
    if n_resamples < 1:
        raise InvalidParameterError(f"n_resamples must be >= 1, got {n_resamples}")

    table = build_contingency_table(assignment, values, name=name)
    check_table(table)

    test = select_test(table, min_expected=min_expected)
    smallest_expected = float(expected_freq(table.to_numpy(dtype=float)).min())
    if test is HypothesisTest.CHI_SQUARE:
        statistic, p, dof = chi_square_test(table, yates=yates)
    else:
        statistic, p = fisher_exact_test(table, n_resamples=n_resamples, random_state=random_state)
        dof = None

    logger.info("'%s': %s test on %dx%d table (min expected %.2f), p=%.4g",
                table.columns.name, test.value, table.shape[0], table.shape[1], smallest_expected, p)
    return AssociationResult(
        variable=str(table.columns.name),
        table=table,
        test=test,
        statistic=statistic,
        p_value=p,
        dof=dof,
        min_expected=smallest_expected,
        worth_investigating=bool(p < significance_threshold),
    )


# Run the association test for every categorical column, optionally correcting the p-values for multiple testing
def run_association_tests(
    assignment: ClusterAssignment,
    categorical_df: pd.DataFrame,
    variables: Optional[Iterable[str]] = None,
    min_expected: float = 5,
    significance_threshold: float = 0.2,
    correction: Optional[str] = None,
    yates: bool = False,
    n_resamples: int = 10000,
    random_state: Optional[int] = 42,
    skip_degenerate: bool = False,
    logger: logging.Logger | None = None,
) -> Dict[str, AssociationResult]:
    """
    Returns {variable: AssociationResult}.
    Degenerate variables raise DegenerateTableError, or are logged and left out when skip_degenerate is True.
    When correction names a statsmodels multipletests method, adjusted p-values drive the worth_investigating flag.
    """
    log = logger or logging.getLogger("ASSOCIATION")
    if len(categorical_df) != len(assignment):
        raise InvalidParameterError(
            f"Categorical data has {len(categorical_df)} rows but the assignment covers {len(assignment)} points")
    variables = list(categorical_df.columns) if variables is None else list(variables)

    results: Dict[str, AssociationResult] = {}
    for variable in variables:
        try:
            results[variable] = assess_association(
                assignment,
                categorical_df[variable],
                name=variable,
                min_expected=min_expected,
                significance_threshold=significance_threshold,
                yates=yates,
                n_resamples=n_resamples,
                random_state=random_state,
            )
        except DegenerateTableError as exc:
            if not skip_degenerate:
                raise
            log.info("Skipping association test: %s", exc)

    if correction is not None and results:
        _, p_adj, _, _ = multipletests([r.p_value for r in results.values()], alpha=significance_threshold, method=correction)
        results = {
            variable: replace(res, adjusted_p_value=float(p), worth_investigating=bool(p < significance_threshold))
            for (variable, res), p in zip(results.items(), p_adj)
        }
        log.info("Applied '%s' correction to %d p-values", correction, len(results))

    flagged = [v for v, r in results.items() if r.worth_investigating]
    log.info("Variables worth investigating (p < %.2f): %s", significance_threshold, flagged)
    return results


def summarize_associations(results: Dict[str, AssociationResult]) -> pd.DataFrame:
    """One row per tested variable, sorted by p-value."""
    columns = ["variable", "test", "statistic", "dof", "p_value", "adjusted_p_value",
               "worth_investigating", "min_expected", "n", "n_clusters", "n_levels"]
    rows = [{
        "variable": r.variable,
        "test": r.test.value,
        "statistic": r.statistic,
        "dof": r.dof,
        "p_value": r.p_value,
        "adjusted_p_value": r.adjusted_p_value,
        "worth_investigating": r.worth_investigating,
        "min_expected": r.min_expected,
        "n": int(r.table.to_numpy().sum()),
        "n_clusters": r.table.shape[0],
        "n_levels": r.table.shape[1],
    } for r in results.values()]
    return pd.DataFrame(rows, columns=columns).sort_values("p_value").reset_index(drop=True)
