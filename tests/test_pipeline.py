"""
End-to-end tests for the DBSCAN block and the main entry point.
"""
import numpy as np
import pandas as pd
import pytest

import main
import utils
from clustering import NeighborDistanceProfile, PointLabel
from exceptions import InvalidParameterError


def _clinical_records(seed=5):
    """Three patient groups separated in (age, bmi, systolic_bp), with categorical attributes."""
    rng = np.random.default_rng(seed)
    groups = [
        ((30.0, 22.0, 115.0), ["no"] * 35 + ["yes"] * 5),
        ((55.0, 30.0, 140.0), ["no"] * 20 + ["yes"] * 20),
        ((75.0, 26.0, 160.0), ["no"] * 5 + ["yes"] * 35),
    ]
    frames = []
    for center, outcome in groups:
        frames.append(pd.DataFrame({
            "age": center[0] + rng.normal(scale=2.0, size=40),
            "bmi": center[1] + rng.normal(scale=0.8, size=40),
            "systolic_bp": center[2] + rng.normal(scale=3.0, size=40),
            "sex": ["F", "M"] * 20,
            "disease_stage": ["I", "II", "III", "II"] * 10,
            "outcome": outcome,
            "site": ["north"] * 40,
        }))
    records = pd.concat(frames, ignore_index=True)
    records.insert(0, "subject_id", np.arange(len(records)))
    return records


FEATURES = ["age", "bmi", "systolic_bp"]


def test_prepare_point_set_standardizes_columns():
    records = _clinical_records()

    X = utils.prepare_point_set(records, FEATURES)

    assert X.shape == (120, 3)
    np.testing.assert_allclose(X.mean(axis=0), 0.0, atol=1e-9)
    np.testing.assert_allclose(X.std(axis=0), 1.0, atol=1e-9)


def test_prepare_point_set_missing_column():
    with pytest.raises(InvalidParameterError):
        utils.prepare_point_set(_clinical_records(), ["age", "cholesterol"])


def test_prepare_point_set_does_not_touch_records():
    records = _clinical_records()
    before = records.copy()

    utils.prepare_point_set(records, FEATURES)

    pd.testing.assert_frame_equal(records, before)


def test_density_analysis_with_explicit_eps():
    records = _clinical_records()

    analysis = utils.run_density_analysis(
        records,
        feature_cols=FEATURES,
        categorical_cols=["sex", "outcome", "site"],
        eps=0.5,
    )

    assert analysis.threshold.overridden is True
    assert analysis.threshold.eps == 0.5
    assert analysis.profile.k == 4
    assert len(analysis.profile) == 120
    assert analysis.assignment.min_pts == 4
    assert analysis.assignment.n_clusters == 3
    assert analysis.metrics.silhouette > 0.5

    # constant column is degenerate and skipped
    assert set(analysis.associations) == {"sex", "outcome"}
    assert analysis.associations["outcome"].worth_investigating is True
    assert analysis.associations["outcome"].p_value < 0.2


def test_density_analysis_with_elbow_heuristic():
    records = _clinical_records()

    analysis = utils.run_density_analysis(records, feature_cols=FEATURES, categorical_cols=["outcome"])

    assert analysis.threshold.overridden is False
    assert analysis.threshold.eps == analysis.profile.distances[analysis.threshold.index]
    assignment = analysis.assignment
    assert assignment.n_noise + sum(assignment.cluster_sizes().values()) == 120


def test_density_analysis_min_pts_and_k_are_independent():
    analysis = utils.run_density_analysis(_clinical_records(), feature_cols=FEATURES, eps=0.5, min_pts=6, k=3)

    assert analysis.profile.k == 3
    assert analysis.assignment.min_pts == 6


def test_density_analysis_small_dataset_with_explicit_eps_skips_profile():
    records = _clinical_records().iloc[:3]

    analysis = utils.run_density_analysis(records, feature_cols=FEATURES, eps=10.0, min_pts=3)

    assert analysis.profile is None
    assert analysis.assignment.n_clusters == 1


def test_density_analysis_size_guard():
    with pytest.raises(InvalidParameterError):
        utils.run_density_analysis(_clinical_records(), feature_cols=FEATURES, eps=0.5, max_points=100)


def test_density_analysis_plain_data_export():
    analysis = utils.run_density_analysis(
        _clinical_records(), feature_cols=FEATURES, categorical_cols=["outcome"], eps=0.5)

    exported = analysis.to_dict()

    assert set(exported) == {"profile", "threshold", "assignment", "metrics", "associations"}
    assert len(exported["profile"]["distances"]) == 120
    assert len(exported["assignment"]) == 120
    assert exported["threshold"]["method"] == "manual"
    assert exported["metrics"]["n_clusters"] == 3
    assert exported["associations"]["outcome"]["test"] == "chi_square"
    assert {rec["label"] for rec in exported["assignment"]} <= {lab.value for lab in PointLabel}

    summary = analysis.association_summary()
    assert summary["variable"].tolist() == ["outcome"]


def test_should_run():
    flags = {"DBSCAN": True, "ASSOCIATION": False}

    assert utils.should_run("DBSCAN", False, flags) is True
    assert utils.should_run("ASSOCIATION", False, flags) is False
    assert utils.should_run("MISSING", False, flags) is False
    assert utils.should_run("ASSOCIATION", True, flags) is True


def test_main_runs_on_csv(tmp_path):
    path = tmp_path / "records.csv"
    _clinical_records().to_csv(path, index=False)

    assert main.main([str(path)]) == 0


def test_main_reports_analysis_errors(tmp_path):
    path = tmp_path / "tiny.csv"
    _clinical_records().iloc[:3].to_csv(path, index=False)

    # three points cannot support the default 4-NN profile
    assert main.main([str(path)]) == 1


def test_run_pipeline_profile_only(monkeypatch):
    monkeypatch.setattr(main, "RUN_FLAGS", {"KNN_PROFILE": True, "DBSCAN": False})

    result = main.run_pipeline(_clinical_records())

    assert isinstance(result, NeighborDistanceProfile)
    assert result.k == 4


def test_density_analysis_profile_can_be_switched_off_with_explicit_eps():
    analysis = utils.run_density_analysis(
        _clinical_records(), feature_cols=FEATURES, eps=0.5, compute_profile=False)

    assert analysis.profile is None
    assert analysis.to_dict()["profile"] is None
    assert analysis.assignment.n_clusters == 3


def test_density_analysis_elbow_still_reads_the_profile_when_switched_off():
    analysis = utils.run_density_analysis(_clinical_records(), feature_cols=FEATURES, compute_profile=False)

    assert analysis.profile is not None
    assert analysis.threshold.overridden is False


def test_density_analysis_metrics_can_be_switched_off():
    analysis = utils.run_density_analysis(
        _clinical_records(), feature_cols=FEATURES, eps=0.5, compute_metrics=False)

    assert analysis.metrics is None
    assert analysis.to_dict()["metrics"] is None


def test_run_pipeline_honours_stage_flags(monkeypatch):
    monkeypatch.setattr(main, "EPS", 0.5)
    monkeypatch.setattr(main, "RUN_FLAGS", {"KNN_PROFILE": False, "DBSCAN": True, "METRICS": False, "ASSOCIATION": False})

    analysis = main.run_pipeline(_clinical_records())

    assert analysis.profile is None
    assert analysis.metrics is None
    assert analysis.associations == {}
    assert analysis.assignment.n_clusters == 3
