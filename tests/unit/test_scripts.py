"""
Unit tests for batch script start-up: configuration errors exit before any I/O
"""

from unittest.mock import MagicMock, patch

from core.config import Settings
from scripts import refresh_metrics, run_affiliate, run_crawl


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestRunCrawlStartup:

    def test_missing_default_category_exits_1(self):
        with patch.object(run_crawl, "settings", make_settings(DEFAULT_CATEGORY_ID=None)), \
                patch.object(run_crawl, "setup_logging"), \
                patch.object(run_crawl, "build_engine") as mock_engine, \
                patch.object(run_crawl, "PlaywrightPageProvider") as mock_provider:
            assert run_crawl.main([]) == 1

        mock_engine.assert_not_called()
        mock_provider.assert_not_called()

    def test_missing_adapters_exits_1(self):
        with patch.object(run_crawl, "settings", make_settings(DEFAULT_CATEGORY_ID=1, SOURCE_ADAPTERS="")), \
                patch.object(run_crawl, "setup_logging"), \
                patch.object(run_crawl, "build_engine") as mock_engine, \
                patch.object(run_crawl, "PlaywrightPageProvider") as mock_provider:
            assert run_crawl.main([]) == 1

        mock_engine.assert_not_called()
        mock_provider.assert_not_called()

    def test_unimportable_adapter_exits_1(self):
        with patch.object(run_crawl, "settings", make_settings(DEFAULT_CATEGORY_ID=1)), \
                patch.object(run_crawl, "setup_logging"), \
                patch.object(run_crawl, "build_engine") as mock_engine:
            assert run_crawl.main(["--adapter", "boards.missing:Board"]) == 1

        mock_engine.assert_not_called()


class TestRunAffiliateStartup:

    def test_missing_redirect_base_exits_1(self):
        with patch.object(run_affiliate, "settings", make_settings(AFFILIATE_REDIRECT_BASE=None)), \
                patch.object(run_affiliate, "setup_logging"), \
                patch.object(run_affiliate, "build_engine") as mock_engine:
            assert run_affiliate.main() == 1

        mock_engine.assert_not_called()


class TestRefreshMetricsStartup:

    def test_missing_default_category_exits_1(self):
        with patch.object(refresh_metrics, "settings", make_settings(DEFAULT_CATEGORY_ID=None)), \
                patch.object(refresh_metrics, "setup_logging"), \
                patch.object(refresh_metrics, "build_engine") as mock_engine, \
                patch.object(refresh_metrics, "PlaywrightPageProvider") as mock_provider:
            assert refresh_metrics.main(["--subcategory-only"]) == 1

        mock_engine.assert_not_called()
        mock_provider.assert_not_called()

    def test_missing_adapters_exits_1(self):
        with patch.object(refresh_metrics, "settings", make_settings(DEFAULT_CATEGORY_ID=1, SOURCE_ADAPTERS="")), \
                patch.object(refresh_metrics, "setup_logging"), \
                patch.object(refresh_metrics, "build_engine") as mock_engine:
            assert refresh_metrics.main([]) == 1

        mock_engine.assert_not_called()

    def test_valid_config_reaches_run(self):
        run = MagicMock(return_value=0)
        with patch.object(refresh_metrics, "settings", make_settings(DEFAULT_CATEGORY_ID=1)), \
                patch.object(refresh_metrics, "setup_logging"), \
                patch.object(refresh_metrics.asyncio, "run", run):
            assert refresh_metrics.main(["--subcategory-only"]) == 0

        run.assert_called_once()
        run.call_args.args[0].close()
