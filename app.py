"""
Document Scanner - Main Streamlit Application

Upload a photo of a page, drag the four corner handles onto the page
corners, and download the flattened result.
"""

import asyncio
import logging

import streamlit as st

from crop_editor import apply_gesture, render_crop_editor
from image_processing import decode_image, encode_image, image_to_base64
from scanner import (
    DegenerateCorrespondenceError,
    ImageDecodeError,
    PerspectiveWarper,
    QuadEditor,
    load_config,
)
from scanner.transformer import output_size_for

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORNER_LABELS = ["Top-Left", "Top-Right", "Bottom-Right", "Bottom-Left"]

st.set_page_config(
    page_title="Document Scanner",
    page_icon="📄",
    layout="wide",
)


@st.cache_resource
def get_config():
    return load_config()


def init_session_state():
    """Initialize session state variables."""
    if 'editor' not in st.session_state:
        st.session_state.editor = None
    if 'filename' not in st.session_state:
        st.session_state.filename = None
    if 'result_jpeg' not in st.session_state:
        st.session_state.result_jpeg = None
    if 'upload_round' not in st.session_state:
        st.session_state.upload_round = 0  # New uploader widget per scan
    if 'editor_round' not in st.session_state:
        st.session_state.editor_round = 0  # New crop/corner widgets per session
    if 'gesture_seq' not in st.session_state:
        st.session_state.gesture_seq = 0


def start_editor(image) -> QuadEditor:
    cfg = get_config().editor
    return QuadEditor.start(
        image,
        margin=cfg.margin_px,
        max_margin_fraction=cfg.max_margin_fraction,
        handle_size=cfg.handle_size_px,
    )


def open_editor(editor: QuadEditor):
    st.session_state.editor = editor
    st.session_state.editor_round += 1
    st.session_state.gesture_seq = 0


def reset_session():
    st.session_state.editor = None
    st.session_state.filename = None
    st.session_state.result_jpeg = None
    st.session_state.upload_round += 1


def upload_section():
    """Photo upload; starts an editing session on success."""
    st.subheader("📤 Upload a Photo")

    uploaded_file = st.file_uploader(
        "Choose a photo of a document",
        type=['jpg', 'jpeg', 'png', 'webp'],
        key=f"photo_uploader_{st.session_state.upload_round}",
    )
    if uploaded_file is None:
        return

    try:
        image = asyncio.run(decode_image(uploaded_file.read()))
    except ImageDecodeError as e:
        st.error(f"Could not read {uploaded_file.name}: {e}")
        return

    open_editor(start_editor(image))
    st.session_state.filename = uploaded_file.name
    st.session_state.result_jpeg = None
    st.rerun()


def corner_key(i: int, axis: str) -> str:
    return f"corner_{st.session_state.editor_round}_{i}_{axis}"


def sync_corner_inputs(editor: QuadEditor):
    """Copy the editor's corners into the fine-tune inputs."""
    for i, corner in enumerate(editor.quad):
        st.session_state[corner_key(i, "x")] = float(corner.x)
        st.session_state[corner_key(i, "y")] = float(corner.y)


def corner_fine_tune(editor: QuadEditor):
    """Numeric corner inputs (alternative to dragging)."""
    moved = False
    with st.expander("Fine-tune corner coordinates", expanded=True):
        cols = st.columns(4)
        for i, (label, col) in enumerate(zip(CORNER_LABELS, cols)):
            corner = editor.quad[i]
            st.session_state.setdefault(corner_key(i, "x"), float(corner.x))
            st.session_state.setdefault(corner_key(i, "y"), float(corner.y))
            with col:
                st.caption(label)
                x = st.number_input("X", key=corner_key(i, "x"))
                y = st.number_input("Y", key=corner_key(i, "y"))
            if (x, y) == (corner.x, corner.y):
                continue
            if editor.move_handle(i, x, y):
                moved = True
            else:
                st.warning(
                    f"{label} sits under another corner handle; drag that one away first."
                )
    if moved:
        # Redraw the crop canvas with the new corners
        st.rerun()


def flatten(editor: QuadEditor) -> bool:
    """Confirm the corners and rectify the photo. Returns True on success."""
    cfg = get_config()
    quad = editor.confirm()
    warper = PerspectiveWarper(
        solver=cfg.homography.solver,
        iterations=cfg.homography.power_iterations,
    )
    out_w, out_h = output_size_for(editor.image)

    try:
        with st.spinner("Flattening..."):
            result = asyncio.run(warper.warp_async(editor.image, quad, out_w, out_h))
    except DegenerateCorrespondenceError as e:
        logger.warning(f"Rejected corners for {st.session_state.filename}: {e}")
        st.error(f"Could not flatten with these corners ({e}). Adjust them and try again.")
        # Reopen the session on the same corners so the user can re-pick
        open_editor(QuadEditor(editor.image, quad, editor.handle_size))
        return False

    st.session_state.result_jpeg = encode_image(
        result, quality=cfg.output.jpeg_quality
    )
    return True


def editor_section(editor: QuadEditor):
    """Corner adjustment, confirm and cancel."""
    st.subheader("✂️ Adjust Corners")
    st.markdown(f"`{st.session_state.filename}` ({editor.image.width}x{editor.image.height})")

    gesture = render_crop_editor(
        image_base64=image_to_base64(editor.image),
        corners=editor.quad,
        image_width=editor.image.width,
        image_height=editor.image.height,
        handle_size=editor.handle_size,
        key=f"crop_editor_{st.session_state.editor_round}",
    )
    seq = apply_gesture(editor, gesture, st.session_state.gesture_seq)
    if seq != st.session_state.gesture_seq:
        st.session_state.gesture_seq = seq
        sync_corner_inputs(editor)
        st.rerun()

    corner_fine_tune(editor)

    st.divider()
    col1, col2, col3 = st.columns(3)

    with col1:
        if st.button("🔄 Reset Corners", key="reset_corners"):
            open_editor(start_editor(editor.image))
            st.rerun()

    with col2:
        if st.button("📄 Flatten", type="primary", key="flatten"):
            if flatten(editor):
                st.rerun()

    with col3:
        if st.button("❌ Cancel", key="cancel"):
            editor.cancel()
            reset_session()
            st.rerun()


def result_section():
    st.subheader("✅ Flattened Page")
    st.image(st.session_state.result_jpeg)

    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            "💾 Download JPEG",
            data=st.session_state.result_jpeg,
            file_name="scan.jpg",
            mime="image/jpeg",
        )
    with col2:
        if st.button("📷 Scan Another", key="scan_another"):
            reset_session()
            st.rerun()


def main():
    """Main application."""
    init_session_state()

    st.title("📄 Document Scanner")

    if st.session_state.result_jpeg is not None:
        result_section()
    elif st.session_state.editor is not None:
        editor_section(st.session_state.editor)
    else:
        upload_section()


if __name__ == "__main__":
    main()
