import unittest
from unittest.mock import MagicMock, patch

from flask import Flask

import inscriptions_api
import storage
import wizard
import wizard_views
from api_client import InProcessAdapter
from settings import WORKSHOPS

PERSONAL_INFO = {
    "nom": "Dupont",
    "prenom": "Marie",
    "email": "marie@x.com",
    "telephone": "0600000000",
    "poste": "CEO",
    "startup": "Acme",
}


class WizardFlowTests(unittest.TestCase):
    def setUp(self):
        storage.configure_store("sqlite://")
        self.notifier = MagicMock()
        self.app = Flask(__name__)
        self.app.secret_key = "test"
        self.app.extensions["registration_notifier"] = self.notifier
        self.app.register_blueprint(wizard_views.wizard_bp)
        self.app.register_blueprint(inscriptions_api.inscriptions_bp, url_prefix="/api")
        self.client = self.app.test_client()
        api_url_patch = patch("wizard_views.REGISTRATION_API_URL", None)
        api_url_patch.start()
        self.addCleanup(api_url_patch.stop)

    def _state(self) -> wizard.WizardState:
        with self.client.session_transaction() as sess:
            return wizard.WizardState.from_dict(sess.get(wizard_views.SESSION_KEY))

    def _reach_workshops(self):
        self.client.post("/next")
        self.client.post("/next", data=PERSONAL_INFO)
        self.assertEqual(self._state().step, wizard.Step.WORKSHOPS)

    def test_intro_page_lists_workshops(self):
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        html = resp.get_data(as_text=True)
        self.assertIn("Je m'inscris", html)
        for workshop in WORKSHOPS:
            self.assertIn(workshop, html)

    def test_logos_are_hidden_without_urls(self):
        with patch("wizard_views.BRAND_LOGO_URL", ""), patch("wizard_views.PARTNERS_LOGO_URL", ""):
            html = self.client.get("/").get_data(as_text=True)
        self.assertNotIn("<img", html)

    def test_configured_logo_is_rendered(self):
        with patch("wizard_views.BRAND_LOGO_URL", "https://cdn.example/header.jpeg"):
            html = self.client.get("/").get_data(as_text=True)
        self.assertIn('src="https://cdn.example/header.jpeg"', html)

    def test_missing_fields_block_step_two_and_render_inline_errors(self):
        self.client.post("/next")
        resp = self.client.post("/next", data=dict(PERSONAL_INFO, nom="", email="nope"), follow_redirects=True)
        state = self._state()
        self.assertEqual(state.step, wizard.Step.PERSONAL_INFO)
        self.assertEqual(set(state.errors), {"nom", "email"})
        html = resp.get_data(as_text=True)
        self.assertIn("Le nom est requis", html)
        self.assertIn("Email invalide", html)
        # typed values survive the round trip
        self.assertIn('value="Marie"', html)

    def test_back_keeps_draft_and_clears_errors(self):
        self._reach_workshops()
        self.client.post("/submit", data={})
        self.assertIn("ateliers", self._state().errors)
        self.client.post("/back")
        state = self._state()
        self.assertEqual(state.step, wizard.Step.PERSONAL_INFO)
        self.assertEqual(state.errors, {})
        self.assertEqual(state.draft.nom, "Dupont")

    def test_full_registration(self):
        self._reach_workshops()
        resp = self.client.post("/submit", data={"ateliers": [WORKSHOPS[1]]}, follow_redirects=True)

        state = self._state()
        self.assertEqual(state.step, wizard.Step.CONFIRMATION)
        self.assertEqual(state.record["ateliers"], WORKSHOPS[1])
        self.assertEqual(storage.count_inscriptions(), 1)
        html = resp.get_data(as_text=True)
        self.assertIn("Merci pour votre inscription", html)
        self.assertIn("Marie Dupont", html)
        self.assertIn("Acme", html)
        self.notifier.send.assert_called_once()
        self.assertEqual(self.notifier.send.call_args.args, ("marie@x.com", "Marie Dupont", [WORKSHOPS[1]]))

    def test_notification_failure_still_confirms(self):
        self.notifier.send.side_effect = RuntimeError("smtp down")
        self._reach_workshops()
        self.client.post("/submit", data={"ateliers": WORKSHOPS[0]})
        self.assertEqual(self._state().step, wizard.Step.CONFIRMATION)

    def test_storage_failure_shows_banner(self):
        self._reach_workshops()
        with patch("inscriptions_api.insert_inscription", side_effect=storage.StorageError("duplicate key")):
            resp = self.client.post("/submit", data={"ateliers": WORKSHOPS[0]}, follow_redirects=True)
        state = self._state()
        self.assertEqual(state.step, wizard.Step.WORKSHOPS)
        self.assertEqual(state.errors["form"], "duplicate key")
        self.assertIn("duplicate key", resp.get_data(as_text=True))
        self.assertEqual(storage.count_inscriptions(), 0)

    def test_relay_is_called_when_configured(self):
        relay = MagicMock()
        relay.relay.return_value = False
        self._reach_workshops()
        with patch("wizard_views._relay_client", return_value=relay):
            self.client.post("/submit", data={"ateliers": WORKSHOPS[0]})
        self.assertEqual(self._state().step, wizard.Step.CONFIRMATION)
        self.assertEqual(relay.relay.call_args.args[0]["ateliers"], WORKSHOPS[0])

    def test_wizard_id_is_issued_before_the_workshop_step(self):
        self._reach_workshops()
        with self.client.session_transaction() as sess:
            self.assertTrue(sess.get("wizard_id"))

    def test_double_click_on_first_submission_stores_one_row(self):
        self._reach_workshops()
        build_client = wizard_views._registration_client
        second_clicks = []

        def client_with_second_click():
            client = build_client()
            post = client.session.post

            def post_during_second_click(*args, **kwargs):
                if not second_clicks:
                    second_clicks.append(None)
                    second_clicks[0] = self.client.post("/submit", data={"ateliers": WORKSHOPS[0]})
                return post(*args, **kwargs)

            client.session.post = post_during_second_click
            return client

        with patch("wizard_views._registration_client", side_effect=client_with_second_click):
            self.client.post("/submit", data={"ateliers": WORKSHOPS[0]})

        self.assertEqual(second_clicks[0].status_code, 302)
        self.assertEqual(storage.count_inscriptions(), 1)
        self.assertEqual(self._state().step, wizard.Step.CONFIRMATION)

    def test_in_flight_wizard_id_blocks_submission(self):
        self._reach_workshops()
        with self.client.session_transaction() as sess:
            wid = sess["wizard_id"]
        wizard_views._IN_FLIGHT.add(wid)
        self.addCleanup(wizard_views._IN_FLIGHT.discard, wid)

        self.client.post("/submit", data={"ateliers": WORKSHOPS[0]})

        self.assertEqual(self._state().step, wizard.Step.WORKSHOPS)
        self.assertEqual(storage.count_inscriptions(), 0)

    def test_restart_clears_state(self):
        self._reach_workshops()
        self.client.post("/restart")
        self.assertEqual(self._state().step, wizard.Step.INTRO)


class RegistrationClientChoiceTests(unittest.TestCase):
    def setUp(self):
        self.app = Flask(__name__)
        self.app.register_blueprint(wizard_views.wizard_bp)
        self.app.register_blueprint(inscriptions_api.inscriptions_bp, url_prefix="/api")

    def test_local_handler_is_called_in_process(self):
        with patch("wizard_views.REGISTRATION_API_URL", None), self.app.test_request_context("/submit"):
            client = wizard_views._registration_client()
        self.assertEqual(client.url, "http://localhost/api/inscriptions")
        self.assertIsInstance(client.session.get_adapter(client.url), InProcessAdapter)

    def test_configured_url_goes_over_http(self):
        with patch("wizard_views.REGISTRATION_API_URL", "https://forum.example/api/inscriptions"), \
                self.app.test_request_context("/submit"):
            client = wizard_views._registration_client()
        self.assertEqual(client.url, "https://forum.example/api/inscriptions")
        self.assertNotIsInstance(client.session.get_adapter(client.url), InProcessAdapter)


if __name__ == "__main__":
    unittest.main()
