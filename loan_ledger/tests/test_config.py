"""Unit tests for YAML settings loading."""

from pathlib import Path
import tempfile
import unittest

from loan_ledger.core.config import AppSettings, load_settings


class LoadSettingsTests(unittest.TestCase):
    """Validate parsing, unit conversion and fallbacks."""

    def _write(self, content: str) -> Path:
        handle = tempfile.NamedTemporaryFile("w", suffix=".yml", delete=False, encoding="utf-8")
        with handle:
            handle.write(content)
        path = Path(handle.name)
        self.addCleanup(path.unlink)
        return path

    def test_values_are_converted(self) -> None:
        """Money values are read in major units and stored in minor units."""
        path = self._write(
            "app:\n"
            "  name: Test Ledger\n"
            "  debug: 'yes'\n"
            "  port: 9000\n"
            "ledger:\n"
            "  timezone: America/Bogota\n"
            "  currency: cop\n"
            "  rounding_tolerance: 0.04\n"
            "  min_digital_amount: 5\n"
            "  late_fee_bps: 150\n"
            "  payment_intent_ttl_minutes: 15\n"
            "storage:\n"
            "  backend: FIRESTORE\n"
            "  collection_prefix: test_\n"
            "  firebase:\n"
            "    project_id: demo-project\n"
        )
        settings = load_settings(path)
        self.assertEqual(settings.app_name, "Test Ledger")
        self.assertTrue(settings.debug)
        self.assertEqual(settings.port, 9000)
        self.assertEqual(settings.timezone, "America/Bogota")
        self.assertEqual(settings.currency, "COP")
        self.assertEqual(settings.rounding_tolerance_minor, 4)
        self.assertEqual(settings.min_digital_amount_minor, 500)
        self.assertEqual(settings.late_fee_bps, 150)
        self.assertEqual(settings.payment_intent_ttl_minutes, 15)
        self.assertEqual(settings.storage_backend, "firestore")
        self.assertEqual(settings.collection_prefix, "test_")
        self.assertEqual(settings.firebase_project_id, "demo-project")

    def test_invalid_values_fall_back(self) -> None:
        """Invalid entries keep their defaults."""
        path = self._write(
            "ledger:\n"
            "  timezone: Mars/Olympus\n"
            "  rounding_tolerance: -1\n"
            "  close_tolerance: 0.001\n"
            "  max_conflict_retries: 0\n"
            "  duplicate_window_seconds: soon\n"
            "storage:\n"
            "  backend: postgres\n"
        )
        settings = load_settings(path)
        defaults = AppSettings()
        self.assertEqual(settings.timezone, defaults.timezone)
        self.assertEqual(settings.rounding_tolerance_minor, defaults.rounding_tolerance_minor)
        self.assertEqual(settings.close_tolerance_minor, defaults.close_tolerance_minor)
        self.assertEqual(settings.max_conflict_retries, defaults.max_conflict_retries)
        self.assertEqual(settings.duplicate_window_seconds, defaults.duplicate_window_seconds)
        self.assertEqual(settings.storage_backend, "memory")

    def test_missing_or_broken_file_uses_defaults(self) -> None:
        """Missing and unparsable files both produce default settings."""
        self.assertEqual(load_settings("/nonexistent/config.yml"), AppSettings())
        self.assertEqual(load_settings(self._write("ledger: [unclosed\n")), AppSettings())

    def test_packaged_config(self) -> None:
        """The bundled config.yml matches the documented defaults."""
        settings = load_settings()
        self.assertEqual(settings.timezone, "America/Lima")
        self.assertEqual(settings.rounding_tolerance_minor, 5)
        self.assertEqual(settings.storage_backend, "memory")
        self.assertEqual(settings.tzinfo.key, "America/Lima")


if __name__ == "__main__":
    unittest.main()
