"""Unit tests for CleaningPipeline.

Tests the fixpoint cleaning loop, redirect re-cleaning, cancellation,
alternative-instance rewriting, non-convergence, and rule reloading.
"""

import unittest
from concurrent.futures import ThreadPoolExecutor

from urlpurifier.core.exceptions import InvalidRuleError, InvalidURLError, NonConvergenceError
from urlpurifier.core.models import CleanOptions, RuleSet, Service
from urlpurifier.engine.pipeline import CleaningPipeline


RULES = {
    "providers": {
        "google": {
            "urlPattern": r"^https?://(?:www\.)?google\.com",
            "rules": ["sa", "usg", "ved"],
            "redirections": [r"^https?://(?:www\.)?google\.com/url\?.*?url=([^&]+)"],
        },
        "tracker": {
            "urlPattern": r"^https?://tracker\.example",
            "completeProvider": True,
        },
        "shop": {
            "urlPattern": r"^https?://shop\.example",
            "rawRules": [r"/ref=[^/?]*"],
            "rules": ["pf_rd_[a-z]+"],
        },
        "globalRules": {
            "urlPattern": ".*",
            "rules": ["utm_[a-z]+", "fbclid"],
            "referralMarketing": ["ref"],
        },
    }
}


class TestCleaningPipeline(unittest.TestCase):
    """Test cleaning URLs through the full provider list."""

    def setUp(self):
        self.pipeline = CleaningPipeline(RuleSet.from_dict(RULES))

    def test_strips_tracking_fields(self):
        """Test the basic utm removal scenario."""
        result = self.pipeline.clean("https://example.com/?utm_source=x&id=42")

        self.assertEqual(result.url, "https://example.com/?id=42")
        self.assertTrue(result.changed)
        self.assertFalse(result.cancelled)
        self.assertEqual(result.matched_providers, ["globalRules"])
        self.assertEqual(result.passes, 2)

    def test_clean_url_unchanged(self):
        """Test that a clean URL comes back untouched after one pass."""
        result = self.pipeline.clean("https://example.com/page?id=1")

        self.assertEqual(result.url, "https://example.com/page?id=1")
        self.assertFalse(result.changed)
        self.assertEqual(result.passes, 1)
        self.assertEqual(result.matched_providers, [])

    def test_providers_chain_until_stable(self):
        """Test that several providers apply in successive passes."""
        result = self.pipeline.clean(
            "https://shop.example/item/ref=abc?pf_rd_p=1&utm_source=x&id=7"
        )

        self.assertEqual(result.url, "https://shop.example/item?id=7")
        self.assertEqual(result.matched_providers, ["shop", "globalRules"])

    def test_redirect_target_is_recleaned(self):
        """Test that an unwrapped destination is cleaned from scratch."""
        result = self.pipeline.clean(
            "https://www.google.com/url?sa=t"
            "&url=https%3A%2F%2Fexample.com%2F%3Futm_source%3Dx%26id%3D1&usg=abc"
        )

        self.assertEqual(result.url, "https://example.com/?id=1")
        self.assertTrue(result.redirected)
        self.assertEqual(result.matched_providers, ["google", "globalRules"])

    def test_idempotent(self):
        """Test that cleaning a cleaned URL changes nothing."""
        urls = [
            "https://example.com/?utm_source=x&id=42",
            "https://example.com/page#utm_medium=y&a=1",
            "https://shop.example/item/ref=abc?pf_rd_p=1&fbclid=2",
            "https://www.google.com/url?url=https%3A%2F%2Fexample.com%2F%3Ffbclid%3D1",
            "https://example.com/plain",
        ]
        for url in urls:
            with self.subTest(url=url):
                once = self.pipeline.clean_url(url)
                self.assertEqual(self.pipeline.clean_url(once), once)

    def test_cancel(self):
        """Test that a complete provider blocks the URL."""
        result = self.pipeline.clean("https://tracker.example/pixel?x=1")

        self.assertTrue(result.cancelled)
        self.assertIsNone(result.url)
        self.assertEqual(result.matched_providers, ["tracker"])
        self.assertIsNone(self.pipeline.clean_url("https://tracker.example/pixel"))

    def test_cancel_disabled(self):
        """Test that without domain blocking the catch-all strips everything."""
        result = self.pipeline.clean(
            "https://tracker.example/p?x=1",
            CleanOptions(domain_blocking=False),
        )

        self.assertFalse(result.cancelled)
        self.assertEqual(result.url, "https://tracker.example/p")

    def test_referral_marketing_option(self):
        """Test that referral fields are removed only when excluded."""
        url = "https://example.com/?ref=abc&id=1"

        self.assertEqual(self.pipeline.clean_url(url), url)
        self.assertEqual(
            self.pipeline.clean_url(url, CleanOptions(referral_marketing_excluded=True)),
            "https://example.com/?id=1",
        )

    def test_remove_fields_disabled(self):
        """Test that tracking removal can be switched off."""
        url = "https://example.com/?utm_source=x"
        result = self.pipeline.clean(url, CleanOptions(remove_fields=False))

        self.assertEqual(result.url, url)
        self.assertEqual(result.passes, 0)

    def test_invalid_url(self):
        """Test that a malformed URL is a hard failure."""
        with self.assertRaises(InvalidURLError):
            self.pipeline.clean("example.com/?utm_source=x")

    def test_empty_redirect_capture_cleans_normally(self):
        """Test that a redirection capturing nothing does not unwrap the URL."""
        pipeline = CleaningPipeline(RuleSet.from_dict({"providers": {
            "outbound": {
                "urlPattern": r"^https?://out\.example",
                "rules": ["utm_[a-z]+"],
                "redirections": [r"\?to=([^&]*)"],
            }
        }}))

        result = pipeline.clean("https://out.example/?to=&utm_source=x")

        self.assertEqual(result.url, "https://out.example/?to=")
        self.assertFalse(result.redirected)

    def test_concurrent_cleaning(self):
        """Test that concurrent calls on one pipeline agree."""
        url = "https://example.com/?utm_source=x&fbclid=y&id=1"
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(self.pipeline.clean_url, [url] * 64))

        self.assertEqual(set(results), {"https://example.com/?id=1"})


class TestPipelineRedirectProviders(unittest.TestCase):
    """Test alternative-instance redirection in the pipeline."""

    def setUp(self):
        self.pipeline = CleaningPipeline(
            RuleSet.from_dict(RULES),
            [Service(type="piped", instances=("https://piped.example",))],
        )

    def test_clean_then_redirect(self):
        """Test that tracking is removed before the host is rewritten."""
        result = self.pipeline.clean(
            "https://youtube.com/watch?v=abc&utm_source=x",
            CleanOptions(apply_redirect_providers=True),
        )
        self.assertEqual(result.url, "https://piped.example/watch?v=abc")

    def test_redirect_providers_off_by_default(self):
        """Test that hosts are not rewritten unless asked."""
        self.assertEqual(
            self.pipeline.clean_url("https://youtube.com/watch?v=abc"),
            "https://youtube.com/watch?v=abc",
        )

    def test_redirect_single(self):
        """Test the standalone alternative-instance rewrite."""
        result = self.pipeline.redirect_single("https://www.youtube.com/watch?v=abc")
        self.assertTrue(result.changed)
        self.assertEqual(result.url, "https://piped.example/watch?v=abc")

    def test_redirect_single_without_instances(self):
        """Test that unmapped services are left alone."""
        result = self.pipeline.redirect_single("https://reddit.com/r/python")
        self.assertFalse(result.changed)
        self.assertEqual(result.url, "https://reddit.com/r/python")

    def test_redirect_after_cancel_skipped(self):
        """Test that a cancelled URL is not redirected."""
        result = self.pipeline.clean(
            "https://tracker.example/p",
            CleanOptions(apply_redirect_providers=True),
        )
        self.assertTrue(result.cancelled)
        self.assertIsNone(result.url)


class TestPipelineConvergence(unittest.TestCase):
    """Test the pass limit."""

    def test_redirect_loop_raises(self):
        """Test that a self-redirecting rule is reported, not looped forever."""
        ruleset = RuleSet.from_dict({"providers": {
            "loop": {
                "urlPattern": r"loop\.example",
                "redirections": [r"^(https?://loop\.example/.*)$"],
            }
        }})
        pipeline = CleaningPipeline(ruleset, max_passes=5)

        with self.assertRaises(NonConvergenceError):
            pipeline.clean("https://loop.example/a")

    def test_max_passes_validated(self):
        """Test that the pass limit must be positive."""
        with self.assertRaises(ValueError):
            CleaningPipeline(max_passes=0)


class TestPipelineLoading(unittest.TestCase):
    """Test replacing the active rules."""

    def test_empty_pipeline_changes_nothing(self):
        """Test that a pipeline without rules returns URLs as-is."""
        pipeline = CleaningPipeline()
        self.assertEqual(pipeline.providers, ())
        self.assertEqual(
            pipeline.clean_url("https://example.com/?utm_source=x"),
            "https://example.com/?utm_source=x",
        )

    def test_load_replaces_snapshot(self):
        """Test that loading swaps in a new snapshot and leaves the old one intact."""
        pipeline = CleaningPipeline(RuleSet.from_dict(RULES))
        old = pipeline.snapshot

        pipeline.load(RuleSet.from_dict({"providers": {"only": {"urlPattern": ".*", "rules": ["x"]}}}))

        self.assertIsNot(pipeline.snapshot, old)
        self.assertEqual([p.name for p in pipeline.providers], ["only"])
        self.assertEqual(
            [p.name for p in old.providers],
            ["google", "tracker", "shop", "globalRules"],
        )

    def test_failed_load_keeps_previous_rules(self):
        """Test that an invalid rule set never becomes active."""
        pipeline = CleaningPipeline(RuleSet.from_dict(RULES))
        bad = RuleSet.from_dict({"providers": {
            "good": {"urlPattern": ".*"},
            "bad": {"urlPattern": ".*", "rules": ["utm_("]},
        }})

        with self.assertRaises(InvalidRuleError):
            pipeline.load(bad)

        self.assertEqual(len(pipeline.providers), 4)
        self.assertEqual(
            pipeline.clean_url("https://example.com/?utm_source=x"),
            "https://example.com/",
        )

    def test_load_with_services(self):
        """Test that services can be replaced along with the rules."""
        pipeline = CleaningPipeline(RuleSet.from_dict(RULES))
        self.assertFalse(pipeline.redirect_single("https://youtube.com/watch").changed)

        pipeline.load(
            RuleSet.from_dict(RULES),
            services=[Service(type="invidious", instances=("https://inv.example",))],
        )

        self.assertEqual(
            pipeline.redirect_single("https://youtube.com/watch").url,
            "https://inv.example/watch",
        )

    def test_source_hash_recorded(self):
        """Test that the rule set hash is exposed on the snapshot."""
        pipeline = CleaningPipeline(RuleSet.from_dict(RULES, source_hash="abc"))
        self.assertEqual(pipeline.snapshot.source_hash, "abc")


if __name__ == "__main__":
    unittest.main()
