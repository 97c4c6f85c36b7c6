import unittest

from borderwatch.scoring.relevance import extract_keywords, is_conflict_related, is_thailand_cambodia_related


class TestThailandCambodiaGate(unittest.TestCase):
    def test_both_country_tokens_always_relevant(self):
        self.assertTrue(is_thailand_cambodia_related("Thailand and Cambodia sign a tourism memo"))
        self.assertTrue(is_thailand_cambodia_related("", title="THAILAND CAMBODIA"))
        self.assertTrue(is_thailand_cambodia_related("ប្រទេសថៃ និង កម្ពុជា"))

    def test_one_country_needs_conflict_keyword(self):
        self.assertTrue(is_thailand_cambodia_related("Cambodia reinforces its border posts"))
        self.assertFalse(is_thailand_cambodia_related("Cambodia celebrates the water festival"))

    def test_no_country_not_relevant(self):
        self.assertFalse(is_thailand_cambodia_related("Border dispute flares between two neighbours"))

    def test_khmer_keywords(self):
        self.assertTrue(is_thailand_cambodia_related("កម្ពុជា ព្រំដែន"))


class TestSocialGate(unittest.TestCase):
    def test_social_keywords(self):
        self.assertTrue(is_conflict_related("Long queues at the Poipet border crossing"))
        self.assertFalse(is_conflict_related("Lovely sunset tonight"))
        self.assertFalse(is_conflict_related(""))


class TestExtractKeywords(unittest.TestCase):
    def test_distinct_in_first_seen_order(self):
        kws = extract_keywords("Thailand border talks: Thailand and Cambodia discuss border trade")
        self.assertEqual(kws[:2], ["thailand", "cambodia"])
        self.assertEqual(kws.count("border"), 1)
        self.assertIn("trade", kws)

    def test_capped(self):
        text = (
            "thailand thai cambodia cambodian khmer border dispute tension conflict diplomatic territory "
            "maritime fishing trade economic cooperation agreement embassy ambassador"
        )
        self.assertEqual(len(extract_keywords(text)), 15)


if __name__ == "__main__":
    unittest.main()
