"""
OBS package export: hotkey and filename rules, the packaging task, and the
endpoints that start it and serve the zip.

test_package_contents:
Action: Export a workspace with two bookmarks.
Expect: Job completed at 100%; the zip under processed-files/<ws>/ holds the
clips, thumbnails, metadata and OBS config; scratch space and lease are gone.

test_failed_clip_is_left_out:
Action: ffmpeg fails on one bookmark.
Expect: The package is still built with the remaining clip.
"""

import json
import shutil
import tempfile
from datetime import timedelta
from pathlib import Path
from unittest import TestCase
from unittest.mock import patch
from zipfile import ZipFile

from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from api.models import Bookmark, ProcessingJob, Workspace, WorkspaceLease
from api.tasks import OBS_EXPORT_BUSY_MESSAGE, OBS_EXPORT_LEASE, export_obs_package_task
from clipping import paths
from clipping.ffmpeg import ToolError
from clipping.obs_package import assign_hotkey, build_hotkeys, clip_filename, write_zip

MEDIA_ROOT = tempfile.mkdtemp()


class HotkeyTests(TestCase):

    def test_sequential_uses_four_banks(self):
        self.assertEqual(assign_hotkey(0, "sequential"), {"key": "F1", "modifiers": []})
        self.assertEqual(assign_hotkey(11, "sequential"), {"key": "F12", "modifiers": []})
        self.assertEqual(assign_hotkey(12, "sequential"), {"key": "F1", "modifiers": ["Ctrl"]})
        self.assertEqual(assign_hotkey(30, "sequential"), {"key": "F7", "modifiers": ["Alt"]})
        self.assertEqual(assign_hotkey(40, "sequential"), {"key": "F5", "modifiers": ["Shift"]})

    def test_other_patterns_stop_at_ctrl(self):
        self.assertEqual(assign_hotkey(12, "time-based"), {"key": "F1", "modifiers": ["Ctrl"]})
        self.assertEqual(assign_hotkey(30, "creator-based"), {"key": "F19", "modifiers": ["Ctrl"]})

    def test_unknown_pattern_counts_up(self):
        self.assertEqual(assign_hotkey(14, "whatever"), {"key": "F15", "modifiers": []})

    def test_unlabelled_bookmarks_get_a_clip_number(self):
        hotkeys = build_hotkeys([{"id": 7, "label": ""}, {"id": 9, "label": "Goal"}], "sequential")
        self.assertEqual([h["label"] for h in hotkeys], ["Clip 1", "Goal"])
        self.assertEqual(hotkeys[1]["bookmark_id"], 9)


class ClipFilenameTests(TestCase):

    def test_conventions(self):
        args = ("Match night", "Cup/Final", "Goal!")
        self.assertEqual(clip_filename(*args, "workspace-content-label"), "Match_night-Cup_Final-Goal_")
        self.assertEqual(clip_filename(*args, "content-label"), "Cup_Final-Goal_")
        self.assertEqual(clip_filename(*args, "label-only"), "Goal_")
        self.assertEqual(clip_filename(*args, "workspace-label"), "Match_night-Goal_")

    def test_missing_label(self):
        self.assertEqual(clip_filename("W", "", None, "label-only"), "untitled")


class WriteZipTests(TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_paths_are_relative_to_package(self):
        package = self.tmp / "pkg"
        (package / "obs").mkdir(parents=True)
        (package / "obs" / "config.json").write_text("{}")

        size = write_zip(package, self.tmp / "out" / "package.zip")

        self.assertGreater(size, 0)
        with ZipFile(self.tmp / "out" / "package.zip") as zf:
            self.assertEqual(zf.namelist(), ["obs/config.json"])


def fake_cut(source, dest, start_ms, end_ms, duration_ms=None):
    Path(dest).parent.mkdir(parents=True, exist_ok=True)
    Path(dest).write_bytes(b"clip")
    return "copy"


def fake_thumbnail(args, timeout=None):
    Path(args[-1]).write_bytes(b"jpg")


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class ObsExportTests(APITestCase):

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.workspace = Workspace.objects.create(
            title="Match night", content_title="Cup final", content_duration_ms=120_000,
            processing_status="completed",
        )
        self.goal = Bookmark.objects.create(workspace=self.workspace, label="Goal", start_ms=1000, end_ms=4000)
        self.save = Bookmark.objects.create(workspace=self.workspace, label="Save", start_ms=9000, end_ms=12_000)
        source = paths.processed_video_path(MEDIA_ROOT, self.workspace.id)
        source.parent.mkdir(parents=True, exist_ok=True)
        source.write_bytes(b"video")
        self.job = ProcessingJob.objects.create(
            workspace=self.workspace, type="obs_export",
            payload={"hotkey_pattern": "sequential", "naming_convention": "label-only"},
        )

    def tearDown(self):
        shutil.rmtree(paths.workspace_dir(MEDIA_ROOT, self.workspace.id), ignore_errors=True)
        shutil.rmtree(paths.temp_dir(MEDIA_ROOT), ignore_errors=True)

    @patch("clipping.obs_package.run_ffmpeg", side_effect=fake_thumbnail)
    @patch("api.tasks.cut_clip", side_effect=fake_cut)
    def test_package_contents(self, mock_cut, mock_ffmpeg):
        self.assertEqual(export_obs_package_task(self.job.id), "completed")

        self.job.refresh_from_db()
        self.assertEqual(self.job.progress_percent, 100)
        self.assertEqual(self.job.payload["clip_count"], 2)
        self.assertEqual(self.job.payload["skipped_bookmarks"], [])
        self.assertEqual(self.job.payload["hotkey_pattern"], "sequential")

        zip_path = paths.workspace_dir(MEDIA_ROOT, self.workspace.id) / self.job.payload["zip_name"]
        self.assertTrue(zip_path.name.startswith("obs-package-"))
        with ZipFile(zip_path) as zf:
            names = set(zf.namelist())
            config = json.loads(zf.read("obs/config.json"))
            clips = json.loads(zf.read("metadata/clips.json"))

        self.assertTrue({
            "clips/Goal.mp4", "clips/Save.mp4",
            f"thumbnails/{self.goal.id}.jpg", f"thumbnails/{self.save.id}.jpg",
            "metadata/clips.json", "metadata/workspace-info.json",
            "obs/config.json", "obs/hotkeys.json",
        } <= names)
        self.assertEqual(config["workspace"]["title"], "Match night")
        self.assertEqual([c["filename"] for c in config["clips"]], ["Goal.mp4", "Save.mp4"])
        self.assertEqual(clips[1]["hotkey"]["key"], "F2")
        self.assertEqual(clips[1]["duration_ms"], 3000)

        # thumbnail taken at the bookmark start
        args = mock_ffmpeg.call_args_list[0][0][0]
        self.assertEqual(args[:2], ["-ss", "1.0"])

        self.assertFalse(paths.obs_scratch_dir(MEDIA_ROOT, self.workspace.id, self.job.id).exists())
        self.assertFalse(WorkspaceLease.objects.exists())

    @patch("clipping.obs_package.run_ffmpeg", side_effect=fake_thumbnail)
    @patch("api.tasks.cut_clip")
    def test_failed_clip_is_left_out(self, mock_cut, mock_ffmpeg):
        def cut_or_fail(source, dest, start_ms, end_ms, duration_ms=None):
            if start_ms == 9000:
                raise ToolError(["ffmpeg"], "ffmpeg exited 1", returncode=1)
            return fake_cut(source, dest, start_ms, end_ms)

        mock_cut.side_effect = cut_or_fail

        self.assertEqual(export_obs_package_task(self.job.id), "completed")

        self.job.refresh_from_db()
        self.assertEqual(self.job.payload["clip_count"], 1)
        self.assertEqual(self.job.payload["skipped_bookmarks"], [self.save.id])
        zip_path = paths.workspace_dir(MEDIA_ROOT, self.workspace.id) / self.job.payload["zip_name"]
        with ZipFile(zip_path) as zf:
            config = json.loads(zf.read("obs/config.json"))
        self.assertEqual([c["id"] for c in config["clips"]], [self.goal.id])

    @patch("api.tasks.cut_clip", side_effect=fake_cut)
    def test_duplicate_labels_get_distinct_files(self, mock_cut):
        self.save.label = "Goal"
        self.save.save()

        with patch("clipping.obs_package.run_ffmpeg", side_effect=fake_thumbnail):
            export_obs_package_task(self.job.id)

        names = [Path(c[0][1]).name for c in mock_cut.call_args_list]
        self.assertEqual(names, ["Goal.mp4", f"Goal-{self.save.id}.mp4"])

    @patch("api.tasks.cut_clip")
    def test_missing_source_fails_job(self, mock_cut):
        paths.processed_video_path(MEDIA_ROOT, self.workspace.id).unlink()

        self.assertEqual(export_obs_package_task(self.job.id), "failed")

        self.job.refresh_from_db()
        self.assertIn("Processed video file not found", self.job.error_text)
        mock_cut.assert_not_called()
        self.assertFalse(WorkspaceLease.objects.exists())

    @patch("api.tasks.cut_clip")
    def test_busy_workspace_is_not_exported_twice(self, mock_cut):
        WorkspaceLease.objects.create(
            workspace=self.workspace, purpose=OBS_EXPORT_LEASE, owner="job-other",
            expires_at=timezone.now() + timedelta(minutes=5),
        )

        self.assertEqual(export_obs_package_task(self.job.id), "cancelled")

        self.job.refresh_from_db()
        self.assertEqual(self.job.error_text, OBS_EXPORT_BUSY_MESSAGE)
        mock_cut.assert_not_called()

    @patch("api.views.export_obs_package_task.delay")
    def test_start_export(self, mock_task):
        url = reverse('workspaces-obs-package', args=[self.workspace.id])
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(url, {"hotkey_pattern": "time-based"}, format='json')

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        job = ProcessingJob.objects.get(id=response.data['job_id'])
        self.assertEqual(job.type, "obs_export")
        self.assertEqual(job.status, "pending")
        self.assertEqual(job.payload, {"hotkey_pattern": "time-based", "naming_convention": "workspace-content-label"})
        mock_task.assert_called_once_with(job.id)

    @patch("api.views.export_obs_package_task.delay")
    def test_start_export_rejects_bad_input(self, mock_task):
        url = reverse('workspaces-obs-package', args=[self.workspace.id])

        response = self.client.post(url, {"naming_convention": "random"}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("naming_convention", response.data)

        self.workspace.processing_status = "processing"
        self.workspace.save()
        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.assertEqual(ProcessingJob.objects.filter(type="obs_export").count(), 1)
        mock_task.assert_not_called()

    def test_download(self):
        url = reverse('workspaces-download-obs-package', kwargs={"pk": self.workspace.id, "job_id": self.job.id})
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        zip_path = paths.obs_package_path(MEDIA_ROOT, self.workspace.id, 1700000000000)
        zip_path.write_bytes(b"PK\x05\x06" + b"\x00" * 18)
        self.job.status = "completed"
        self.job.payload = {**self.job.payload, "zip_name": zip_path.name}
        self.job.save()

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "application/zip")
        self.assertIn('filename="Match_night_obs-package.zip"', response["Content-Disposition"])
        self.assertEqual(b"".join(response.streaming_content), zip_path.read_bytes())
        response.close()
