"""Test helpers shared across modules."""

from turnscan.capture.models import CapturedImage


def make_image(
    image_id: str = "img1",
    session_id: str = "session-1",
    camera_type: str = "T2i",
    sharpness=90.0,
    raw_file_path: str = "/captures/img1.jpg",
    **kwargs,
) -> CapturedImage:
    """Create a captured image without touching hardware."""
    return CapturedImage(
        id=image_id,
        session_id=session_id,
        camera_id=kwargs.pop("camera_id", "cam-abc"),
        camera_type=camera_type,
        captured_at=kwargs.pop("captured_at", 1700000000000),
        raw_file_path=raw_file_path,
        preview_ref=kwargs.pop("preview_ref", "/previews/img1.jpg"),
        sharpness=sharpness,
        **kwargs,
    )


def assert_session_invariants(session) -> None:
    """Pass/image bookkeeping must always agree."""
    assert len(session.passes) >= 1
    pass_ids = [i for p in session.passes for i in p.images]
    image_ids = [i.id for i in session.images]
    assert len(image_ids) == len(pass_ids)
    assert sorted(image_ids) == sorted(pass_ids)
    assert len(set(image_ids)) == len(image_ids)
