"""API endpoint integration tests.

Tests the FastAPI endpoints for payroll batches, accounts, transactions,
employees and metrics.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from payroll_disbursement.events import BatchCreated, BatchProcessed
from payroll_disbursement.models import Account

pytestmark = pytest.mark.asyncio


@pytest.fixture
def company(factory):
    """Company with 40000 in its main account and four base-grade employees."""
    company = factory.company(balance=40_000)
    factory.staff(company, [6, 6, 6, 6])
    return company


@pytest.fixture
def funded_company(factory):
    """Company with ample funds and grades {4, 6, 6}."""
    company = factory.company("Funded Ltd", balance=500_000)
    company.staff = factory.staff(company, [4, 6, 6])
    return company


async def create_batch(client, company, headers, base_salary=25000, month="2026-10"):
    return await client.post(
        f"/api/v1/companies/{company.company_id}/payroll-batches",
        headers=headers,
        json={"base_salary": base_salary, "payroll_month": month},
    )


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Health endpoint should return 200."""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["version"] == "test"
        assert "timestamp" in data

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready", "missing": []}

    async def test_not_ready_without_external_account(self, client: AsyncClient, session, settings):
        account = session.get(Account, settings.external_funding_account_id)
        session.delete(account)
        session.commit()

        response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["missing"] == ["external_funding_account"]

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestActorHeaders:
    async def test_actor_headers_required(self, client: AsyncClient, company):
        response = await create_batch(client, company, headers={})

        assert response.status_code == 400
        assert "X-Actor-Role" in response.json()["detail"]

    async def test_invalid_role(self, client: AsyncClient, company):
        response = await create_batch(
            client, company, headers={"X-Actor-Role": "OWNER", "X-Actor-Id": "x"}
        )
        assert response.status_code == 400

    async def test_role_case_insensitive(self, client: AsyncClient, company):
        response = await create_batch(
            client, company, headers={"X-Actor-Role": "admin", "X-Actor-Id": "root"}
        )
        assert response.status_code == 201


class TestBatchCreation:
    async def test_employer_creates_batch(self, client: AsyncClient, funded_company, actors, events):
        response = await create_batch(client, funded_company, actors.employer(funded_company.company_id))

        assert response.status_code == 201, response.text
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["employee_count"] == 3
        assert data["total_amount"] == 114750
        assert data["remaining_amount"] == 114750
        assert data["funding_account_id"] == funded_company.main_account_id
        assert any(isinstance(e, BatchCreated) for e in events)

    async def test_employee_cannot_create(self, client: AsyncClient, funded_company, actors):
        headers = actors.employee(funded_company.staff[0])
        response = await create_batch(client, funded_company, headers)

        assert response.status_code == 403
        assert response.json()["code"] == "SCOPE_DENIED"

    async def test_other_employer_cannot_create(self, client: AsyncClient, funded_company, actors):
        response = await create_batch(client, funded_company, actors.employer("someone-else"))
        assert response.status_code == 403

    async def test_second_batch_conflicts(self, client: AsyncClient, funded_company, actors):
        headers = actors.employer(funded_company.company_id)
        await create_batch(client, funded_company, headers)

        response = await create_batch(client, funded_company, headers, month="2026-11")

        assert response.status_code == 409
        assert response.json()["code"] == "BATCH_ALREADY_IN_PROGRESS"

    async def test_invalid_month(self, client: AsyncClient, funded_company, actors):
        response = await create_batch(
            client, funded_company, actors.employer(funded_company.company_id), month="2026-13"
        )
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_PAYROLL_MONTH"

    async def test_negative_base_salary(self, client: AsyncClient, funded_company, actors):
        response = await create_batch(
            client, funded_company, actors.admin(), base_salary=-1
        )
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_AMOUNT"

    async def test_unknown_company(self, client: AsyncClient, actors):
        response = await client.post(
            "/api/v1/companies/missing/payroll-batches",
            headers=actors.admin(),
            json={"base_salary": 25000, "payroll_month": "2026-10"},
        )
        assert response.status_code == 404
        assert response.json()["code"] == "COMPANY_NOT_FOUND"


class TestBatchProcessing:
    async def test_full_funding_completes(self, client: AsyncClient, funded_company, actors, events):
        headers = actors.employer(funded_company.company_id)
        batch = (await create_batch(client, funded_company, headers)).json()

        response = await client.post(
            f"/api/v1/payroll-batches/{batch['payroll_batch_id']}/process", headers=headers
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["success_count"] == 3
        assert data["executed_amount"] == data["total_amount"] == 114750
        assert all(item["status"] == "PAID" for item in data["items"])
        assert isinstance(events[-1], BatchProcessed)

        balance = await client.get(
            f"/api/v1/accounts/{funded_company.main_account_id}/balance", headers=headers
        )
        assert balance.json()["balance"] == 500_000 - 114750

    async def test_short_funding_then_top_up(self, client: AsyncClient, company, actors):
        headers = actors.employer(company.company_id)
        batch = (await create_batch(client, company, headers, base_salary=18518)).json()
        batch_id = batch["payroll_batch_id"]
        assert batch["total_amount"] == 100_000

        processed = (await client.post(f"/api/v1/payroll-batches/{batch_id}/process", headers=headers)).json()
        assert processed["status"] == "PARTIALLY_COMPLETED"
        assert processed["executed_amount"] == 25_000
        assert processed["failed_count"] == 3

        gate = (await client.get(f"/api/v1/payroll-batches/{batch_id}/funding-gate", headers=headers)).json()
        assert gate["passed"] is False
        assert gate["outcome"] == "INSUFFICIENT"
        assert gate["balance"] == 15_000
        assert gate["shortfall"] == 60_000
        assert gate["suggested_top_up"] == 60_000

        too_small = await client.post(
            f"/api/v1/payroll-batches/{batch_id}/top-up", headers=headers, json={"amount": 59_000}
        )
        assert too_small.status_code == 422

        response = await client.post(
            f"/api/v1/payroll-batches/{batch_id}/top-up", headers=headers, json={"amount": 60_000}
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["new_balance"] == 75_000
        assert data["gate"]["passed"] is True
        assert data["process_result"]["status"] == "COMPLETED"
        assert data["process_result"]["executed_amount"] == 100_000

        detail = (await client.get(f"/api/v1/payroll-batches/{batch_id}", headers=headers)).json()
        assert detail["status"] == "COMPLETED"
        assert detail["remaining_amount"] == 0

    async def test_employee_cannot_process(self, client: AsyncClient, funded_company, actors):
        batch = (await create_batch(client, funded_company, actors.admin())).json()

        response = await client.post(
            f"/api/v1/payroll-batches/{batch['payroll_batch_id']}/process",
            headers=actors.employee(funded_company.staff[0]),
        )
        assert response.status_code == 403

    async def test_unknown_batch(self, client: AsyncClient, actors):
        response = await client.post("/api/v1/payroll-batches/missing/process", headers=actors.admin())
        assert response.status_code == 404
        assert response.json()["code"] == "BATCH_NOT_FOUND"


class TestBatchReads:
    async def test_items_scoped_to_employee(self, client: AsyncClient, funded_company, actors):
        batch = (await create_batch(client, funded_company, actors.admin())).json()
        url = f"/api/v1/payroll-batches/{batch['payroll_batch_id']}"

        senior, junior, _ = funded_company.staff
        as_admin = (await client.get(url, headers=actors.admin())).json()
        as_senior = (await client.get(url, headers=actors.employee(senior))).json()
        as_junior = (await client.get(url, headers=actors.employee(junior))).json()

        assert len(as_admin["items"]) == 3
        assert len(as_senior["items"]) == 3
        assert [i["employee_id"] for i in as_junior["items"]] == [junior.employee_id]
        assert [i["grade_rank"] for i in as_admin["items"]] == [4, 6, 6]

    async def test_other_company_hidden(self, client: AsyncClient, funded_company, company, actors):
        batch = (await create_batch(client, funded_company, actors.admin())).json()

        response = await client.get(
            f"/api/v1/payroll-batches/{batch['payroll_batch_id']}",
            headers=actors.employer(company.company_id),
        )
        assert response.status_code == 403

    async def test_last_batch(self, client: AsyncClient, funded_company, actors):
        headers = actors.employer(funded_company.company_id)
        url = f"/api/v1/companies/{funded_company.company_id}/payroll-batches/last"

        assert (await client.get(url, headers=headers)).status_code == 404

        created = (await create_batch(client, funded_company, headers)).json()
        response = await client.get(url, headers=headers)
        assert response.status_code == 200
        assert response.json()["payroll_batch_id"] == created["payroll_batch_id"]

    async def test_list_batches_by_status(self, client: AsyncClient, funded_company, actors):
        headers = actors.employer(funded_company.company_id)
        batch = (await create_batch(client, funded_company, headers)).json()
        await client.post(f"/api/v1/payroll-batches/{batch['payroll_batch_id']}/process", headers=headers)
        await create_batch(client, funded_company, headers, month="2026-11")

        url = f"/api/v1/companies/{funded_company.company_id}/payroll-batches"
        everything = (await client.get(url, headers=headers)).json()
        completed = (await client.get(url, headers=headers, params={"status": "COMPLETED"})).json()

        assert everything["total"] == 2
        assert completed["total"] == 1
        assert completed["items"][0]["payroll_month"] == "2026-10"

    async def test_salary_preview(self, client: AsyncClient, funded_company, actors):
        params = {"company_id": funded_company.company_id, "base_salary": 25000}

        as_employer = await client.get(
            "/api/v1/salary-preview", headers=actors.employer(funded_company.company_id), params=params
        )
        assert as_employer.status_code == 200
        data = as_employer.json()
        assert data["total_amount"] == 114750
        assert data["by_grade"] == {"4": 1, "6": 2}
        assert [line["gross"] for line in data["lines"]] == [47250, 33750, 33750]

        junior = funded_company.staff[1]
        as_junior = (
            await client.get("/api/v1/salary-preview", headers=actors.employee(junior), params=params)
        ).json()
        assert as_junior["employee_count"] == 1
        assert as_junior["total_amount"] == 33750


class TestAccounts:
    async def test_top_up_account(self, client: AsyncClient, company, actors):
        response = await client.post(
            f"/api/v1/accounts/{company.main_account_id}/top-up",
            headers=actors.employer(company.company_id),
            json={"amount": 10_000, "description": "Reserve"},
        )

        assert response.status_code == 200, response.text
        assert response.json()["new_balance"] == 50_000

    async def test_top_up_limits(self, client: AsyncClient, company, actors):
        response = await client.post(
            f"/api/v1/accounts/{company.main_account_id}/top-up",
            headers=actors.admin(),
            json={"amount": 500},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_AMOUNT"

    async def test_top_up_unknown_account(self, client: AsyncClient, actors):
        response = await client.post(
            "/api/v1/accounts/missing/top-up", headers=actors.admin(), json={"amount": 1_000}
        )
        assert response.status_code == 404

    async def test_employee_cannot_see_company_account(self, client: AsyncClient, funded_company, actors):
        response = await client.get(
            f"/api/v1/accounts/{funded_company.main_account_id}/balance",
            headers=actors.employee(funded_company.staff[0]),
        )
        assert response.status_code == 403

    async def test_employee_sees_own_account(self, client: AsyncClient, funded_company, actors):
        me = funded_company.staff[0]
        response = await client.get(
            f"/api/v1/accounts/{me.account_id}/summary", headers=actors.employee(me)
        )
        assert response.status_code == 200
        assert response.json()["balance"] == 0


class TestTransactions:
    @pytest_asyncio.fixture
    async def paid_batch(self, client, funded_company, actors):
        headers = actors.employer(funded_company.company_id)
        batch = (await create_batch(client, funded_company, headers)).json()
        await client.post(f"/api/v1/payroll-batches/{batch['payroll_batch_id']}/process", headers=headers)
        return batch

    async def test_filter_by_type(self, client: AsyncClient, paid_batch, actors):
        response = await client.get(
            "/api/v1/transactions",
            headers=actors.admin(),
            params={"type": "salary_disbursement", "payroll_batch_id": paid_batch["payroll_batch_id"]},
        )

        data = response.json()
        assert data["total"] == 3
        assert {t["amount"] for t in data["items"]} == {47250, 33750}

    async def test_employee_sees_only_visible_transactions(
        self, client: AsyncClient, paid_batch, funded_company, actors
    ):
        junior = funded_company.staff[2]
        data = (await client.get("/api/v1/transactions", headers=actors.employee(junior))).json()

        assert data["total"] == 1
        assert data["items"][0]["credit_account_id"] == junior.account_id

    async def test_pagination(self, client: AsyncClient, paid_batch, actors):
        data = (
            await client.get(
                "/api/v1/transactions",
                headers=actors.admin(),
                params={"type": "SALARY_DISBURSEMENT", "size": 2, "page": 1},
            )
        ).json()

        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert len(data["items"]) == 1

    async def test_reverse_admin_only(self, client: AsyncClient, paid_batch, funded_company, actors):
        txns = (
            await client.get(
                "/api/v1/transactions", headers=actors.admin(), params={"type": "SALARY_DISBURSEMENT"}
            )
        ).json()["items"]
        target = txns[0]["transaction_id"]

        denied = await client.post(
            f"/api/v1/transactions/{target}/reverse",
            headers=actors.employer(funded_company.company_id),
            json={"reason": "duplicate"},
        )
        assert denied.status_code == 403

        response = await client.post(
            f"/api/v1/transactions/{target}/reverse", headers=actors.admin(), json={"reason": "duplicate"}
        )
        assert response.status_code == 201
        data = response.json()
        assert data["transaction_type"] == "REVERSAL"
        assert data["reverses_transaction_id"] == target

        again = await client.post(
            f"/api/v1/transactions/{target}/reverse", headers=actors.admin(), json={"reason": "duplicate"}
        )
        assert again.status_code == 409
        assert again.json()["code"] == "REVERSAL_NOT_ALLOWED"


class TestEmployees:
    async def test_employer_lists_company(self, client: AsyncClient, funded_company, company, actors):
        data = (
            await client.get("/api/v1/employees", headers=actors.employer(funded_company.company_id))
        ).json()

        assert data["total"] == 3
        assert [e["grade_rank"] for e in data["items"]] == [4, 6, 6]

    async def test_employee_sees_downstream(self, client: AsyncClient, factory, actors):
        company = factory.company("Tiered Ltd")
        staff = factory.staff(company, [2, 4, 6])

        data = (await client.get("/api/v1/employees", headers=actors.employee(staff[1]))).json()

        assert [e["employee_id"] for e in data["items"]] == [staff[1].employee_id, staff[2].employee_id]

    async def test_filter_by_grade(self, client: AsyncClient, funded_company, actors):
        data = (
            await client.get("/api/v1/employees", headers=actors.admin(), params={"grade": 6})
        ).json()
        assert data["total"] == 2


class TestMetricsEndpoint:
    async def test_prometheus(self, client: AsyncClient, company):
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# TYPE payroll_batches gauge" in response.text

    async def test_json(self, client: AsyncClient, company):
        response = await client.get("/metrics", params={"format": "json"})

        assert response.status_code == 200
        assert "metrics" in response.json()
