import unittest
from unittest.mock import MagicMock, patch

import requests

import countries


class CountryLookupTests(unittest.TestCase):
    def setUp(self):
        countries._COUNTRIES_CACHE["value"] = None
        countries._COUNTRIES_CACHE["expires_at"] = None

    def _api_response(self, payload):
        resp = MagicMock()
        resp.raise_for_status.return_value = None
        resp.json.return_value = payload
        return resp

    def test_prefers_french_names_and_sorts_them(self):
        payload = [
            {"name": {"common": "Germany"}, "translations": {"fra": {"common": "Allemagne"}}},
            {"name": {"common": "Egypt"}, "translations": {"fra": {"common": "Égypte"}}},
            {"name": {"common": "Ecuador"}, "translations": {"fra": {"common": "Équateur"}}},
            {"name": {"common": "Estonia"}},
        ]
        with patch("countries.requests.get", return_value=self._api_response(payload)):
            result = countries.get_countries()
        self.assertEqual(result, ["Allemagne", "Égypte", "Équateur", "Estonia"])

    def test_result_is_cached(self):
        payload = [{"name": {"common": "Chile"}}]
        with patch("countries.requests.get", return_value=self._api_response(payload)) as get:
            countries.get_countries()
            countries.get_countries()
        self.assertEqual(get.call_count, 1)

    def test_fallback_on_network_failure(self):
        with patch("countries.requests.get", side_effect=requests.exceptions.ConnectionError("offline")):
            result = countries.get_countries()
        self.assertEqual(len(result), 15)
        self.assertEqual(result, countries.sort_countries(countries.FALLBACK_COUNTRIES))
        self.assertLess(result.index("Algérie"), result.index("Belgique"))
        self.assertLess(result.index("Côte d'Ivoire"), result.index("Espagne"))
        self.assertIsNone(countries._COUNTRIES_CACHE["value"])

    def test_fallback_on_unexpected_payload(self):
        with patch("countries.requests.get", return_value=self._api_response({"message": "rate limited"})):
            self.assertEqual(len(countries.get_countries()), 15)


if __name__ == "__main__":
    unittest.main()
