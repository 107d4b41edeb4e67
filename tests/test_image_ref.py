import unittest

from src.common.image_ref import MISSING_IMAGE, ImageReference


class ImageReferenceTests(unittest.TestCase):
    def test_raw_is_preserved(self) -> None:
        ref = ImageReference.from_value("  dhi.io/nginx:1 ")
        self.assertEqual(ref.raw, "  dhi.io/nginx:1 ")
        self.assertFalse(ref.malformed)

    def test_parses_registry_tag_and_digest(self) -> None:
        ref = ImageReference("registry.example.com:5000/team/api:2.1@sha256:abc")
        self.assertEqual(ref.registry, "registry.example.com:5000")
        self.assertEqual(ref.name, "registry.example.com:5000/team/api")
        self.assertEqual(ref.tag, "2.1")
        self.assertEqual(ref.digest, "sha256:abc")

    def test_registry_port_is_not_a_tag(self) -> None:
        ref = ImageReference("localhost:5000/app")
        self.assertIsNone(ref.tag)
        self.assertEqual(ref.registry, "localhost:5000")
        self.assertEqual(ref.name, "localhost:5000/app")

    def test_short_names_have_no_registry(self) -> None:
        self.assertIsNone(ImageReference("nginx:latest").registry)
        self.assertIsNone(ImageReference("library/nginx").registry)
        self.assertEqual(ImageReference("nginx:latest").tag, "latest")

    def test_missing_and_non_string_values_are_malformed(self) -> None:
        for value in (None, "", "   ", 7, {"image": "x"}):
            ref = ImageReference.from_value(value)
            self.assertTrue(ref.malformed, value)
            self.assertIsNone(ref.tag)
            self.assertIsNone(ref.registry)
        self.assertEqual(str(ImageReference.from_value(None)), MISSING_IMAGE)
        self.assertEqual(str(ImageReference.from_value(7)), "7")
        self.assertEqual(str(ImageReference.from_value("  ")), "'  '")


if __name__ == "__main__":
    unittest.main()
