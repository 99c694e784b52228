"""
Tests for the admin API (trigger, run listing, queue depths).
"""

from constants import BACKGROUND_QUEUE, INTERACTIVE_QUEUE, RUN_PENDING
from models.scrape_run import ScrapeRun
from services.run_tracker import complete_run, start_run


class TestTriggerScrape:

    def test_queues_background_job(self, client, sent_jobs):
        response = client.post("/api/admin/scrape", json={
            "type": "keyword_search",
            "keyword": "form builder",
            "options": {"pages": 2, "scrape_app_details": True, "ignored": 1},
        })

        assert response.status_code == 202
        body = response.get_json()
        assert body == {"status": "queued", "queue": BACKGROUND_QUEUE, "type": "keyword_search", "job_id": "job-1"}

        assert sent_jobs(BACKGROUND_QUEUE)[0]["data"] == {
            "type": "keyword_search",
            "triggered_by": "admin",
            "keyword": "form builder",
            "options": {"pages": 2, "scrape_app_details": True},
        }

    def test_interactive_flag_selects_queue(self, client, sent_jobs):
        response = client.post("/api/admin/scrape", json={"type": "app_details", "slug": "formful", "interactive": True})

        assert response.get_json()["queue"] == INTERACTIVE_QUEUE
        assert sent_jobs(INTERACTIVE_QUEUE)[0]["data"]["slug"] == "formful"

    def test_unknown_type_rejected(self, client):
        response = client.post("/api/admin/scrape", json={"type": "everything"})

        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "INVALID_JOB_TYPE"

    def test_bad_pages_rejected(self, client):
        for pages in (0, "3", True):
            response = client.post("/api/admin/scrape", json={"type": "category", "options": {"pages": pages}})
            assert response.status_code == 400
            assert response.get_json()["error"]["code"] == "INVALID_OPTIONS"

    def test_non_string_target_rejected(self, client, sent_jobs):
        for body in ({"keyword": 123}, {"slug": ["formful"]}, {"user_id": {"id": 1}}):
            response = client.post("/api/admin/scrape", json={"type": "keyword_search", **body})
            assert response.status_code == 400
            assert response.get_json()["error"]["code"] == "INVALID_TARGET"
        assert sent_jobs() == []

    def test_non_object_body_rejected(self, client):
        response = client.post("/api/admin/scrape", json=["keyword_search"])
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "INVALID_BODY"

    def test_queue_down_records_pending_run(self, client, fake_redis):
        fake_redis.down = True

        response = client.post("/api/admin/scrape", json={"type": "reviews", "slug": "formful"})

        assert response.status_code == 202
        assert response.get_json()["status"] == "pending"
        run = ScrapeRun.query.one()
        assert run.status == RUN_PENDING
        assert run.run_metadata["job_data"]["slug"] == "formful"


class TestRuns:

    def test_lists_runs_with_filter(self, client, db_session):
        complete_run(start_run("reviews", triggered_by="scheduler"), {"items_scraped": 3})
        start_run("category")

        body = client.get("/api/admin/runs?type=reviews").get_json()

        assert body["count"] == 1
        run = body["data"][0]
        assert run["scraper_type"] == "reviews"
        assert run["status"] == "completed"
        assert run["metadata"]["items_scraped"] == 3

    def test_bad_limit(self, client):
        response = client.get("/api/admin/runs?limit=abc")
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "INVALID_LIMIT"


class TestQueues:

    def test_counts_per_queue(self, client, app):
        app.extensions["job_queues"][BACKGROUND_QUEUE].enqueue({"type": "category"})

        body = client.get("/api/admin/queues").get_json()

        assert body["queues"][BACKGROUND_QUEUE]["waiting"] == 1
        assert body["queues"][INTERACTIVE_QUEUE]["waiting"] == 0

    def test_unavailable(self, client, fake_redis):
        fake_redis.down = True
        response = client.get("/api/admin/queues")

        assert response.status_code == 503
        assert response.get_json()["error"]["code"] == "QUEUE_UNAVAILABLE"


class TestAppShell:

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}

    def test_not_found_uses_error_envelope(self, client):
        response = client.get("/api/admin/nope")
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "NOT_FOUND"
