# tests/test_sweep.py
import unittest
from types import SimpleNamespace

from bulk_image_cleaner.extension.host import HostApi, HostCapabilityMissing
from bulk_image_cleaner.extension.sweep import ProgressTracker, ReferenceIndex, ReferenceSweep
from bulk_image_cleaner.tests.fakes import (
    FakeAsset,
    FakeElement,
    FakeHost,
    FakePage,
    FakeStyle,
)

A_ID = "64b7f0c2e4a1b2c3d4e5f601"
B_ID = "64b7f0c2e4a1b2c3d4e5f602"
C_ID = "64b7f0c2e4a1b2c3d4e5f603"


def two_page_document():
    a = FakeAsset(A_ID, "hero.png", "https://cdn.example.com/hero.png")
    b = FakeAsset(B_ID, "bg.jpg", "https://cdn.example.com/bg.jpg", mime="image/jpeg")
    c = FakeAsset(C_ID, "old.webp", "https://cdn.example.com/old.webp", mime="image/webp")
    bg_style = FakeStyle(
        {"background-image": f"url(https://uploads.example.com/{B_ID}_bg.jpg)"}
    )
    page1 = FakePage("p1", [FakeElement("Image", asset=a), FakeElement("Block")])
    page2 = FakePage("p2", [FakeElement("Section", styles=[bg_style])])
    # The same style is also reachable from the global style list.
    return FakeHost(assets=[a, b, c], pages=[page1, page2], styles=[bg_style])


class TestReferenceSweep(unittest.IsolatedAsyncioTestCase):
    async def test_two_page_document(self):
        result = await ReferenceSweep(HostApi(two_page_document())).run()

        self.assertEqual(result.unused_count, 1)
        self.assertEqual([r.id for r in result.unused], [C_ID])
        self.assertEqual(result.meta.scanned_pages, 2)
        self.assertEqual(result.meta.detected_references, 2)
        self.assertEqual(result.meta.scanned_elements, 3)
        self.assertEqual(result.meta.scanned_styles, 1)
        self.assertEqual(result.meta.scanned_assets, 3)

    async def test_repeated_sweeps_agree(self):
        host = HostApi(two_page_document())
        first = await ReferenceSweep(host).run()
        second = await ReferenceSweep(host).run()
        self.assertEqual(
            [(r.id, r.is_unused) for r in first.images],
            [(r.id, r.is_unused) for r in second.images],
        )

    async def test_non_image_assets_are_ignored(self):
        pdf = FakeAsset("64b7f0c2e4a1b2c3d4e5f6aa", "terms.pdf", mime="application/pdf")
        img = FakeAsset(A_ID, "", "https://cdn.example.com/x.png")
        result = await ReferenceSweep(HostApi(FakeHost(assets=[pdf, img]))).run()
        self.assertEqual([r.id for r in result.images], [A_ID])
        self.assertEqual(result.meta.scanned_assets, 2)

    async def test_url_inside_quoted_css_marks_used(self):
        a = FakeAsset(A_ID, url="https://cdn.example.com/a.png")
        style = FakeStyle({"background-image": 'url("https://cdn.example.com/a.png")'})
        host = FakeHost(assets=[a], styles=[style])
        result = await ReferenceSweep(HostApi(host)).run()
        self.assertEqual(result.unused_count, 0)

    async def test_non_ascii_style_url_marks_used(self):
        a = FakeAsset(A_ID, url="https://cdn.example.com/café.png")
        style = FakeStyle({"background-image": "url(https://cdn.example.com/café.png)"})
        result = await ReferenceSweep(HostApi(FakeHost(assets=[a], styles=[style]))).run()
        self.assertEqual(result.unused_count, 0)
        self.assertEqual(result.meta.detected_references, 1)

    async def test_social_images_and_background_binding(self):
        og = FakeAsset(A_ID, url="https://cdn.example.com/og.png")
        seo = FakeAsset(B_ID, url="https://cdn.example.com/seo.png")
        bg = FakeAsset(C_ID, url="https://cdn.example.com/bg.png")
        page = FakePage(
            "home",
            [FakeElement("Block", background=bg)],
            og_image=og.url,
            search_image=seo.url,
        )
        result = await ReferenceSweep(HostApi(FakeHost(assets=[og, seo, bg], pages=[page]))).run()
        self.assertEqual(result.unused_count, 0)
        self.assertEqual(result.meta.detected_references, 3)

    async def test_failures_are_swallowed_per_item(self):
        a = FakeAsset(A_ID, url="https://cdn.example.com/a.png")
        b = FakeAsset(B_ID, url="https://cdn.example.com/b.png")
        broken = FakePage("broken", [FakeElement("Image", asset=b)], fail_switch=True)
        ok = FakePage(
            "ok",
            [
                FakeElement("Image", asset=a, fail_asset=True),
                FakeElement("Block", styles=[FakeStyle(fail=True)]),
                FakeElement("Block", style=FakeStyle({"src": a.url})),
            ],
        )
        host = FakeHost(assets=[a, b], pages=[broken, ok], styles=[FakeStyle(fail=True)])
        result = await ReferenceSweep(HostApi(host)).run()

        self.assertEqual(result.meta.scanned_pages, 1)
        # b is only referenced on the page that could not be opened
        self.assertEqual([r.id for r in result.unused], [B_ID])

    async def test_zero_pages_still_completes(self):
        progress = ProgressTracker()
        host = FakeHost(assets=[FakeAsset(A_ID)])
        result = await ReferenceSweep(HostApi(host), progress=progress).run()
        self.assertEqual(result.meta.scanned_pages, 0)
        self.assertEqual(result.unused_count, 1)
        self.assertEqual(progress.value, 100)

    async def test_style_fetches_are_batched(self):
        host = FakeHost(assets=[FakeAsset(A_ID)])
        host.styles = [FakeStyle({"color": "red"}, tracker=host) for _ in range(85)]
        result = await ReferenceSweep(HostApi(host), batch_size=40).run()
        self.assertEqual(result.meta.scanned_styles, 85)
        self.assertEqual(host.max_inflight, 40)

    async def test_missing_asset_capability_raises(self):
        host = SimpleNamespace(get_all_pages_and_folders=lambda: [])
        with self.assertRaises(HostCapabilityMissing):
            await ReferenceSweep(HostApi(host)).run()

    async def test_sync_host_without_optional_capabilities(self):
        asset = SimpleNamespace(
            id=A_ID,
            get_mime_type=lambda: "image/gif",
            get_name=lambda: "spin.gif",
            get_url=lambda: "https://cdn.example.com/spin.gif",
        )
        host = SimpleNamespace(get_all_assets=lambda: [asset])
        result = await ReferenceSweep(HostApi(host)).run()
        self.assertEqual(result.meta.scanned_styles, 0)
        self.assertEqual([r.name for r in result.unused], ["spin.gif"])


class TestReferenceIndex(unittest.TestCase):
    def test_first_mark_wins(self):
        from bulk_image_cleaner.extension.sweep import _Image

        index = ReferenceIndex([_Image(A_ID, "a", "https://cdn/a.png", "image/png")])
        index.mark_used(A_ID)
        index.mark_url("https://cdn/a.png")
        index.scan_payload({"nested": [A_ID]})
        self.assertEqual(index.detected, 1)

    def test_unknown_ids_are_ignored(self):
        from bulk_image_cleaner.extension.sweep import _Image

        index = ReferenceIndex([_Image(A_ID, "a", "", "image/png")])
        index.scan_payload("ffffffffffffffffffffffff and https://elsewhere.example/x.png")
        index.scan_payload(None)
        self.assertEqual(index.detected, 0)


class TestProgressTracker(unittest.TestCase):
    def test_never_moves_backwards(self):
        seen = []
        p = ProgressTracker(on_change=lambda v, step: seen.append(v))
        p.update(30)
        p.update(10)
        p.update(250)
        self.assertEqual(p.value, 100)
        self.assertEqual(seen, [30, 30, 100])

    def test_bump_stops_at_ceiling(self):
        p = ProgressTracker()
        p.update(91)
        p.bump()
        p.bump()
        self.assertEqual(p.value, 92)
