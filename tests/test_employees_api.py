from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from store_fixtures import add_order, add_raw_employee, make_cipher, make_session, statement_timeout_error
from uniform_portal.config import CycleConfig
from uniform_portal.db import get_db
from uniform_portal.dependencies import get_cycle_config, get_field_cipher
from uniform_portal.main import app
from uniform_portal.services.employee_directory import create_employee


class EmployeesApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.cipher = make_cipher()
        create_employee(
            self.db,
            employee_id='EMP-1',
            first_name='Asha',
            last_name='Rao',
            email='Asha.Rao@example.com',
            cipher=self.cipher,
            branch_id='BR-DEL-01',
            cycle_duration={'shirt': 6, 'jacket': 12, 'belt': 3},
        )
        add_raw_employee(self.db, 'EMP-LEGACY', 'legacy@example.com')
        add_order(self.db, 'O-1', 'EMP-1', 'shirt', datetime(2024, 1, 10, tzinfo=timezone.utc))

        def _db_override():
            yield self.db

        app.dependency_overrides[get_db] = _db_override
        app.dependency_overrides[get_field_cipher] = lambda: self.cipher
        app.dependency_overrides[get_cycle_config] = lambda: CycleConfig()
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def test_lookup_by_email(self) -> None:
        response = self.client.get('/employees', params={'email': 'ASHA.RAO@example.com'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['employeeId'], 'EMP-1')
        self.assertEqual(body['email'], 'Asha.Rao@example.com')
        self.assertFalse(body['needsReencryption'])
        self.assertFalse(body['cycleDurationIsDefault'])

    def test_lookup_legacy_record_by_email(self) -> None:
        response = self.client.get('/employees', params={'email': 'legacy@example.com'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['employeeId'], 'EMP-LEGACY')
        self.assertTrue(body['needsReencryption'])
        self.assertEqual(body['cycleDuration'], {'shirt': 6, 'pant': 6, 'shoe': 6, 'jacket': 12})

    def test_unknown_email_is_404(self) -> None:
        response = self.client.get('/employees', params={'email': 'nobody@example.com'})
        self.assertEqual(response.status_code, 404)

    def test_lookup_by_id(self) -> None:
        self.assertEqual(self.client.get('/employees/EMP-1').json()['lastName'], 'Rao')
        self.assertEqual(self.client.get('/employees/EMP-404').status_code, 404)

    def test_eligibility_reports_decisions_and_errors(self) -> None:
        response = self.client.get('/employees/EMP-1/eligibility', params={'as_of': '2024-06-28T00:00:00+00:00'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(set(body['decisions']), {'shirt', 'jacket'})
        self.assertFalse(body['decisions']['shirt']['isEligible'])
        self.assertEqual(body['decisions']['shirt']['cycleMonths'], 6)
        self.assertTrue(body['decisions']['jacket']['isEligible'])
        self.assertEqual(set(body['errors']), {'belt'})

    def test_eligibility_for_unknown_employee_is_404(self) -> None:
        self.assertEqual(self.client.get('/employees/EMP-404/eligibility').status_code, 404)

    @patch('uniform_portal.services.employee_directory._email_matches')
    def test_store_timeout_is_504(self, email_matches_mock) -> None:
        email_matches_mock.side_effect = statement_timeout_error()
        response = self.client.get('/employees', params={'email': 'asha.rao@example.com'})
        self.assertEqual(response.status_code, 504)
        self.assertTrue(response.json()['retryable'])

    def test_duplicate_email_in_store_is_500(self) -> None:
        add_raw_employee(self.db, 'EMP-DUP', 'ASHA.RAO@example.com')
        response = self.client.get('/employees', params={'email': 'asha.rao@example.com'})
        self.assertEqual(response.status_code, 500)

    def test_healthz(self) -> None:
        self.assertEqual(self.client.get('/healthz').json(), {'status': 'ok'})


if __name__ == '__main__':
    unittest.main()
