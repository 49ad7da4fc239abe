import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import SimpleTestCase

from config.env import env_files, load_env


class EnvFilesTests(SimpleTestCase):
    @patch.dict(os.environ, {"DJANGO_ENV": "", "SIGNALS_ENV_FILE": ""})
    def test_default_is_dotenv_only(self):
        self.assertEqual(env_files(Path("/srv/app")), [Path("/srv/app/.env")])

    @patch.dict(os.environ, {"DJANGO_ENV": "dev", "SIGNALS_ENV_FILE": "/run/secrets/signals.env"})
    def test_explicit_file_and_dev(self):
        self.assertEqual(
            env_files(Path("/srv/app")),
            [
                Path("/run/secrets/signals.env"),
                Path("/srv/app/.env"),
                Path("/srv/app/.env.dev"),
            ],
        )


class LoadEnvTests(SimpleTestCase):
    @patch.dict(os.environ, {"SIGNALS_TEST_VALUE": "from-env", "DJANGO_ENV": "", "SIGNALS_ENV_FILE": ""})
    def test_existing_environment_wins(self):
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, ".env").write_text("SIGNALS_TEST_VALUE=from-file\nSIGNALS_OTHER=1\n")

            loaded = load_env(Path(tmp))

        self.assertEqual(loaded, [Path(tmp, ".env")])
        self.assertEqual(os.environ["SIGNALS_TEST_VALUE"], "from-env")
        self.assertEqual(os.environ["SIGNALS_OTHER"], "1")

    @patch.dict(os.environ, {"DJANGO_ENV": "", "SIGNALS_ENV_FILE": ""})
    def test_missing_files_are_skipped(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(load_env(Path(tmp)), [])
