"""Fixtures for step tests: a saved job execution and step execution."""

import pytest

from stepwise.domain.models import JobExecution, StepExecution
from stepwise.domain.parameters import JobParameters
from stepwise.repository import JobRepository


@pytest.fixture
def job_execution(repository: JobRepository, foo_params: JobParameters) -> JobExecution:
    instance = repository.create_job_instance("import", foo_params)
    return repository.create_job_execution(instance, foo_params)


@pytest.fixture
def step_execution(repository: JobRepository, job_execution: JobExecution) -> StepExecution:
    return repository.create_step_execution("load", job_execution)
