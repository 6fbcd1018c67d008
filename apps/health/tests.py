from rest_framework.test import APITestCase


class HealthApiTests(APITestCase):
    def test_live_needs_no_credentials(self):
        response = self.client.get("/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")

    def test_ready_checks_database(self):
        response = self.client.get("/health/ready/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["database"], "up")
