"""Tests for the scheduler and its YAML configuration."""

import pytest

from deal_finder.pipeline import RunStats
from deal_finder.scheduler import Scheduler, SchedulerConfig


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "analysis:\n"
        "  neighborhoods: [east-village, chinatown]\n"
        "  property_kinds: [rental, sale]\n"
        "scheduling:\n"
        "  enabled: true\n"
        "  cron: '30 4 * * 1'\n"
        "  timezone: America/New_York\n"
    )
    return path


def test_config_from_yaml(config_file):
    config = SchedulerConfig(config_file)

    assert config.neighborhoods == ["east-village", "chinatown"]
    assert config.property_kinds == ["rental", "sale"]
    assert config.schedule_enabled
    assert config.cron_expression == "30 4 * * 1"


def test_missing_config_uses_settings(tmp_path):
    config = SchedulerConfig(tmp_path / "absent.yaml")

    assert config.neighborhoods
    assert config.property_kinds == ["rental"]


def test_run_now_uses_configured_neighborhoods(config_file, mocker):
    pipeline = mocker.Mock()
    pipeline.run_batch.return_value = RunStats()
    scheduler = Scheduler(config_path=config_file, pipeline=pipeline)

    stats = scheduler.run_now()

    assert isinstance(stats, RunStats)
    pipeline.run_batch.assert_called_once_with(["east-village", "chinatown"], ["rental", "sale"])


def test_add_job_schedules_cron(config_file, mocker):
    scheduler = Scheduler(config_path=config_file, pipeline=mocker.Mock())

    scheduler.add_job()

    job = scheduler.scheduler.get_job("deal_finder_analysis_job")
    assert job is not None
    assert job.name == "Deal Finder Analysis"


def test_invalid_cron(tmp_path, mocker):
    path = tmp_path / "config.yaml"
    path.write_text("scheduling:\n  cron: '0 3 *'\n")
    scheduler = Scheduler(config_path=path, pipeline=mocker.Mock())

    with pytest.raises(ValueError):
        scheduler.add_job()
