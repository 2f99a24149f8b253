"""Tests for the Fal and Replicate adapters."""

import base64
import json

import httpx
import pytest

from app.errors import ProviderUnavailable
from app.services.providers import ReplicateAdapter, FalAdapter, get_adapter
from app.services.providers.fal import base_model_path, extract_output
from app.services.providers.media import decode_data_uri, file_extension, infer_type_from_url
from app.services.providers.replicate import progress_from_logs

PNG_URI = "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()


class Recorder:
    """Serves canned responses keyed by (method, url) and records requests."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key not in self.routes:
            return httpx.Response(404, text=f"no route for {key}")
        return self.routes[key]

    @property
    def transport(self):
        return httpx.MockTransport(self)


def fal_adapter(routes):
    recorder = Recorder(routes)
    adapter = FalAdapter(
        queue_url="https://queue.fal.test",
        storage_url="https://storage.fal.test/initiate",
        transport=recorder.transport,
    )
    return adapter, recorder


def replicate_adapter(routes):
    recorder = Recorder(routes)
    adapter = ReplicateAdapter(base_url="https://api.replicate.test/v1", transport=recorder.transport)
    return adapter, recorder


def test_media_helpers():
    assert infer_type_from_url("https://x/clip.MP4?sig=1") == "video"
    assert infer_type_from_url("https://x/voice.wav") == "audio"
    assert infer_type_from_url("https://x/mesh.glb") == "3d"
    assert infer_type_from_url("https://x/unknown") == "image"
    assert file_extension("image/jpeg") == "jpg"
    assert file_extension("image/webp; q=1") == "webp"
    assert decode_data_uri(PNG_URI) == ("image/png", b"\x89PNG")
    assert decode_data_uri("data:text/plain,hello%20world") == ("text/plain", b"hello world")
    assert decode_data_uri("data:text/plain;charset=utf-8,caf%C3%A9") == ("text/plain", "café".encode())
    assert decode_data_uri("data:,plain") == ("text/plain", b"plain")
    with pytest.raises(ValueError):
        decode_data_uri("data:image/png;base64")
    with pytest.raises(ValueError):
        decode_data_uri("data:image/png;base64,not base64!")


def test_get_adapter():
    assert isinstance(get_adapter("fal"), FalAdapter)
    assert isinstance(get_adapter("replicate"), ReplicateAdapter)
    with pytest.raises(ValueError):
        get_adapter("other")


def test_fal_base_model_path():
    assert base_model_path("fal-ai/flux/schnell") == "fal-ai/flux"
    assert base_model_path("fal-ai/flux") == "fal-ai/flux"
    assert base_model_path("single") == "single"


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"video": {"url": "https://fal/v"}}, ("https://fal/v", "video")),
        ({"audio": {"url": "https://fal/a"}}, ("https://fal/a", "audio")),
        ({"model_mesh": {"url": "https://fal/m"}}, ("https://fal/m", "3d")),
        ({"image": {"url": "https://fal/i.png"}}, ("https://fal/i.png", "image")),
        ({"url": "https://fal/clip.mp4"}, ("https://fal/clip.mp4", "video")),
        ({"images": [{"url": "https://fal/1.png"}]}, ("https://fal/1.png", "image")),
        (
            {"images": [[{"url": "https://fal/1.png"}], {"url": "https://fal/2.png"}]},
            (["https://fal/1.png", "https://fal/2.png"], "image"),
        ),
        ({"text": "hello"}, ({"text": "hello"}, "text")),
    ],
)
def test_fal_extract_output(payload, expected):
    assert extract_output(payload) == expected


def test_fal_start_stages_data_uris():
    """Test that inline inputs are uploaded before the request is queued."""
    adapter, recorder = fal_adapter(
        {
            ("POST", "https://storage.fal.test/initiate"): httpx.Response(
                200, json={"upload_url": "https://upload.fal.test/put", "file_url": "https://files.fal/img.png"}
            ),
            ("PUT", "https://upload.fal.test/put"): httpx.Response(200),
            ("POST", "https://queue.fal.test/fal-ai/flux/dev"): httpx.Response(
                200, json={"request_id": "req-1", "status": "IN_QUEUE"}
            ),
        }
    )

    handle = adapter.start("fal-ai/flux/dev", {"prompt": "cat", "image_url": PNG_URI}, "key")

    assert handle.correlation_id == "req-1"
    assert handle.initial_status == "IN_QUEUE"

    submit = recorder.requests[-1]
    assert submit.headers["authorization"] == "Key key"
    assert json.loads(submit.content) == {"prompt": "cat", "image_url": "https://files.fal/img.png"}
    initiate = json.loads(recorder.requests[0].content)
    assert initiate["content_type"] == "image/png"
    assert initiate["file_name"].endswith(".png")


def test_fal_start_rejected():
    adapter, _ = fal_adapter(
        {("POST", "https://queue.fal.test/fal-ai/flux"): httpx.Response(422, text="bad prompt")}
    )

    with pytest.raises(ProviderUnavailable) as exc_info:
        adapter.start("fal-ai/flux", {"prompt": ""}, "key")

    assert "422" in exc_info.value.message
    assert exc_info.value.retryable


def test_fal_start_staging_failure():
    adapter, _ = fal_adapter(
        {("POST", "https://storage.fal.test/initiate"): httpx.Response(401, text="unauthorized")}
    )

    with pytest.raises(ProviderUnavailable):
        adapter.start("fal-ai/flux", {"image_url": PNG_URI}, "key")


def test_fal_poll():
    adapter, _ = fal_adapter(
        {
            ("GET", "https://queue.fal.test/fal-ai/flux/requests/req-1/status"): httpx.Response(
                200, json={"status": "IN_PROGRESS", "logs": [{"message": "step 1"}, {"message": "step 2"}]}
            ),
        }
    )

    status = adapter.poll("fal-ai/flux/dev", "req-1", "key")

    assert not status.completed
    assert status.status == "IN_PROGRESS"
    assert status.logs == "step 1\nstep 2"


def test_fal_fetch_result():
    adapter, _ = fal_adapter(
        {
            ("GET", "https://queue.fal.test/fal-ai/flux/requests/req-1"): httpx.Response(
                200, json={"images": [{"url": "https://fal/out.png"}]}
            ),
        }
    )

    result = adapter.fetch_result("fal-ai/flux/dev", "req-1", "key", elapsed=4.0)

    assert result.success
    assert result.output_ref == "https://fal/out.png"
    assert result.media_type == "image"
    assert result.processing_time == 4.0


def test_fal_fetch_result_client_error_is_a_failure():
    adapter, _ = fal_adapter(
        {
            ("GET", "https://queue.fal.test/fal-ai/flux/requests/req-1"): httpx.Response(
                422, text="invalid image size"
            ),
        }
    )

    result = adapter.fetch_result("fal-ai/flux", "req-1", "key", elapsed=1.0)

    assert not result.success
    assert result.error == "Result API error (422): invalid image size"


def test_fal_cancel():
    adapter, recorder = fal_adapter(
        {("PUT", "https://queue.fal.test/fal-ai/flux/requests/req-1/cancel"): httpx.Response(202)}
    )

    assert adapter.cancel("fal-ai/flux/dev", "req-1", "key")
    assert recorder.requests[0].method == "PUT"


def test_replicate_start_with_version():
    adapter, recorder = replicate_adapter(
        {
            ("POST", "https://api.replicate.test/v1/predictions"): httpx.Response(
                201, json={"id": "pred-1", "status": "starting"}
            ),
        }
    )

    handle = adapter.start("owner/model", {"prompt": "cat"}, "tok", version="abc123")

    assert handle.correlation_id == "pred-1"
    request = recorder.requests[0]
    assert request.headers["authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"version": "abc123", "input": {"prompt": "cat"}}


def test_replicate_start_without_version_uses_model_endpoint():
    adapter, recorder = replicate_adapter(
        {
            ("POST", "https://api.replicate.test/v1/models/owner/model/predictions"): httpx.Response(
                201, json={"id": "pred-2"}
            ),
        }
    )

    handle = adapter.start("owner/model", {"prompt": "cat"}, "tok")

    assert handle.correlation_id == "pred-2"
    assert handle.initial_status == "starting"
    assert json.loads(recorder.requests[0].content) == {"input": {"prompt": "cat"}}


def test_replicate_start_stages_list_inputs():
    adapter, recorder = replicate_adapter(
        {
            ("POST", "https://api.replicate.test/v1/files"): httpx.Response(
                201, json={"urls": {"get": "https://api.replicate.test/v1/files/f1"}}
            ),
            ("POST", "https://api.replicate.test/v1/models/owner/model/predictions"): httpx.Response(
                201, json={"id": "pred-3"}
            ),
        }
    )

    adapter.start("owner/model", {"images": [PNG_URI, "https://x/y.png"]}, "tok")

    payload = json.loads(recorder.requests[-1].content)
    assert payload["input"]["images"] == ["https://api.replicate.test/v1/files/f1", "https://x/y.png"]


def test_replicate_poll_progress_from_logs():
    adapter, _ = replicate_adapter(
        {
            ("GET", "https://api.replicate.test/v1/predictions/pred-1"): httpx.Response(
                200, json={"status": "processing", "logs": " 10%|#  | 5/50\n 42%|####  | 21/50"}
            ),
        }
    )

    status = adapter.poll("owner/model", "pred-1", "tok")

    assert not status.completed
    assert status.progress_hint == 42.0
    assert progress_from_logs(None) is None


@pytest.mark.parametrize(
    "prediction,success,output_ref,media_type,error",
    [
        (
            {"status": "succeeded", "output": ["https://r/a.png", "https://r/b.png"]},
            True,
            ["https://r/a.png", "https://r/b.png"],
            "image",
            None,
        ),
        ({"status": "succeeded", "output": ["Hel", "lo"]}, True, "Hello", "text", None),
        ({"status": "succeeded", "output": "https://r/clip.mp4"}, True, "https://r/clip.mp4", "video", None),
        ({"status": "succeeded", "output": {"glb": "https://r/m.glb"}}, True, "https://r/m.glb", "3d", None),
        ({"status": "failed", "error": "CUDA OOM"}, False, None, "image", "CUDA OOM"),
        ({"status": "failed"}, False, None, "image", "Workflow failed"),
        ({"status": "canceled"}, False, None, "image", "Workflow was canceled"),
    ],
)
def test_replicate_fetch_result(prediction, success, output_ref, media_type, error):
    adapter, _ = replicate_adapter(
        {("GET", "https://api.replicate.test/v1/predictions/pred-1"): httpx.Response(200, json=prediction)}
    )

    result = adapter.fetch_result("owner/model", "pred-1", "tok", elapsed=3.0)

    assert result.success is success
    assert result.output_ref == output_ref
    assert result.media_type == media_type
    assert result.error == error
    assert result.processing_time == 3.0


def test_replicate_processing_time_from_metrics():
    adapter, _ = replicate_adapter(
        {
            ("GET", "https://api.replicate.test/v1/predictions/pred-1"): httpx.Response(
                200, json={"status": "succeeded", "output": "https://r/a.png", "metrics": {"predict_time": 1.25}}
            ),
        }
    )

    assert adapter.fetch_result("owner/model", "pred-1", "tok", elapsed=9.0).processing_time == 1.25


def test_invalid_base64_input_fails_start():
    """Test that a corrupt inline input is rejected instead of uploaded."""
    adapter, recorder = fal_adapter({})

    with pytest.raises(ProviderUnavailable) as exc_info:
        adapter.start("fal-ai/flux", {"image_url": "data:image/png;base64,%%%"}, "key")

    assert "image_url" in exc_info.value.message
    assert recorder.requests == []


def test_fal_stages_percent_encoded_text_input():
    adapter, recorder = fal_adapter(
        {
            ("POST", "https://storage.fal.test/initiate"): httpx.Response(
                200, json={"upload_url": "https://upload.fal.test/put", "file_url": "https://files.fal/note.txt"}
            ),
            ("PUT", "https://upload.fal.test/put"): httpx.Response(200),
            ("POST", "https://queue.fal.test/fal-ai/flux"): httpx.Response(200, json={"request_id": "req-2"}),
        }
    )

    adapter.start("fal-ai/flux", {"notes": "data:text/plain,hello%20world"}, "key")

    upload = recorder.requests[1]
    assert upload.method == "PUT"
    assert upload.content == b"hello world"
    assert upload.headers["content-type"] == "text/plain"
