from avcatalog.orchestrator.scheduler import JobScheduler


class DummyConfig:
    def get(self, key, default=None):
        values = {
            "schedule.max_instances_per_job": 1,
            "schedule.misfire_grace_time_seconds": 120,
            "schedule.duga_hours": 3,
            "schedule.b10f_hours": 12,
            "schedule.expire_sales_minutes": 30,
        }
        return values.get(key, default)


class DummyCoordinator:
    async def run_crawler(self, *args, **kwargs):
        return None

    async def reprocess_raw_data(self, *args, **kwargs):
        return None

    async def expire_sales(self, *args, **kwargs):
        return None

    async def run_backfill(self, *args, **kwargs):
        return None

    async def run_reconcile(self, *args, **kwargs):
        return None

    async def publish_sitemaps(self, *args, **kwargs):
        return None

    async def generate_news(self, *args, **kwargs):
        return None


def test_scheduler_sets_guardrail_defaults():
    scheduler = JobScheduler(DummyCoordinator(), DummyConfig())
    scheduler.configure_jobs()

    assert scheduler.scheduler._job_defaults["coalesce"] is True
    assert scheduler.scheduler._job_defaults["max_instances"] == 1
    assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 120

    for job in scheduler.scheduler.get_jobs():
        assert job.max_instances == 1


def test_scheduler_registers_every_job():
    scheduler = JobScheduler(DummyCoordinator(), DummyConfig())
    scheduler.configure_jobs()

    job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
    assert job_ids == {
        "crawl_duga",
        "crawl_sokmil",
        "crawl_b10f",
        "reprocess_raw",
        "expire_sales",
        "backfill",
        "reconcile",
        "sitemap",
        "news",
    }
    crawl = scheduler.scheduler.get_job("crawl_duga")
    assert crawl.args == ("duga",)


def test_scheduler_reads_nested_schedule_section():
    config = {"schedule": {"max_instances_per_job": 2, "misfire_grace_time_seconds": 60}}
    scheduler = JobScheduler(DummyCoordinator(), config)

    assert scheduler.max_instances == 2
    assert scheduler.scheduler._job_defaults["misfire_grace_time"] == 60
