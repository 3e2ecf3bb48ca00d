from __future__ import annotations

import unittest

from holdgate.config import Settings


class DatabaseUrlTests(unittest.TestCase):
    def _normalized(self, url: str) -> str:
        return Settings(database_url=url).database_url_normalized

    def test_bare_postgres_urls_use_psycopg(self) -> None:
        self.assertEqual(
            self._normalized('postgres://u:p@db:5432/holdgate'),
            'postgresql+psycopg://u:p@db:5432/holdgate',
        )
        self.assertEqual(
            self._normalized(' postgresql://u:p@db/holdgate '),
            'postgresql+psycopg://u:p@db/holdgate',
        )

    def test_explicit_driver_and_other_backends_are_untouched(self) -> None:
        self.assertEqual(
            self._normalized('postgresql+psycopg://u:p@db/holdgate'),
            'postgresql+psycopg://u:p@db/holdgate',
        )
        self.assertEqual(self._normalized('sqlite:///holdgate.db'), 'sqlite:///holdgate.db')


if __name__ == '__main__':
    unittest.main()
