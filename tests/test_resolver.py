import pytest

import sample_jobs
from jobqueue.exceptions import JobContractError, JobResolutionError
from jobqueue.resolver import JobResolver, import_task, task_name_of


def test_task_name_of():
    assert task_name_of(sample_jobs.RecordingJob) == "sample_jobs.RecordingJob"


@pytest.mark.parametrize("identifier", ["sample_jobs.RecordingJob", "sample_jobs:RecordingJob"])
def test_import_task(identifier):
    assert import_task(identifier) is sample_jobs.RecordingJob


@pytest.mark.parametrize("identifier", ["", "sample_jobs.Missing", "nowhere.Job", "sample_jobs.handled"])
def test_import_task_unknown(identifier):
    with pytest.raises(JobResolutionError, match="does not exist"):
        import_task(identifier)


def test_resolve_by_name_and_class():
    resolver = JobResolver()
    assert isinstance(resolver.resolve("sample_jobs.RecordingJob"), sample_jobs.RecordingJob)
    assert isinstance(resolver.resolve(sample_jobs.UrgentJob), sample_jobs.UrgentJob)


def test_resolve_creates_fresh_instances():
    resolver = JobResolver()
    assert resolver.resolve(sample_jobs.RecordingJob) is not resolver.resolve(sample_jobs.RecordingJob)


def test_non_job_class_breaks_contract():
    with pytest.raises(JobContractError):
        JobResolver().resolve("sample_jobs.NotAJob")


def test_abstract_job_breaks_contract():
    with pytest.raises(JobContractError, match="handle"):
        JobResolver().resolve(sample_jobs.AbstractJob)


def test_constructor_arguments_need_a_factory():
    with pytest.raises(JobResolutionError):
        JobResolver().resolve(sample_jobs.MailerJob)


def test_factory_builds_instances():
    outbox = []
    resolver = JobResolver.from_factory(lambda cls: cls(outbox) if cls is sample_jobs.MailerJob else cls())

    resolver.resolve(sample_jobs.MailerJob).handle({"to": "a@example.com"})

    assert outbox == [{"to": "a@example.com"}]


def test_import_errors_inside_a_job_module_surface(tmp_path, monkeypatch):
    (tmp_path / "broken_jobs.py").write_text(
        "import some_missing_dependency\n\n\nclass BrokenJob:\n    pass\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))

    with pytest.raises(JobResolutionError, match="could not be imported") as info:
        import_task("broken_jobs.BrokenJob")
    assert isinstance(info.value.__cause__, ModuleNotFoundError)
    assert info.value.__cause__.name == "some_missing_dependency"
