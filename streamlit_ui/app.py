# app.py

# --- Imports ---
import asyncio
import base64

import streamlit as st

from orchestrator.clients import ServiceClient
from orchestrator.session import GenerationSession, GenerationStatus
from shared.config import get_settings
from shared.errors import SlideForgeError
from shared.logging_config import configure_logging
from shared.models import is_embedded_image

# --- Configuration ---
configure_logging()
st.set_page_config(page_title="SlideForge", layout="wide")
settings = get_settings()
client = ServiceClient(settings)

# --- State Management ---
if 'stage' not in st.session_state:
    st.session_state.stage = 'input'
if 'template_style' not in st.session_state:
    st.session_state.template_style = None
if 'session' not in st.session_state:
    st.session_state.session = None
if 'export_bytes' not in st.session_state:
    st.session_state.export_bytes = None


def new_session() -> GenerationSession:
    return GenerationSession(client, client, export_sink=client, concurrency=settings.image_concurrency)


def image_bytes(data_uri: str) -> bytes:
    return base64.b64decode(data_uri.split(",", 1)[1])


# --- UI Functions ---
def template_picker():
    st.subheader("Design")
    mode = st.radio("Visual style", ["Automatic design", "Custom template"], horizontal=True)
    if mode == "Automatic design":
        st.session_state.template_style = None
        return

    upload = st.file_uploader("Upload a screenshot of a slide template", type=["png", "jpg", "jpeg", "webp", "gif"])
    if upload is not None and st.button("Analyze template"):
        data_uri = f"data:{upload.type};base64,{base64.b64encode(upload.getvalue()).decode('utf-8')}"
        with st.spinner("Analyzing your template..."):
            try:
                st.session_state.template_style = asyncio.run(client.analyze_template(data_uri))
            except (SlideForgeError, OSError) as e:
                st.session_state.template_style = None
                st.error(f"Template analysis failed: {e}", icon="⚠️")

    style = st.session_state.template_style
    if style is not None:
        st.markdown(
            f"""
            <div style="display:flex;gap:8px;align-items:center;">
                <div style="width:32px;height:32px;border-radius:6px;background:{style.primary_color};"></div>
                <div style="width:32px;height:32px;border-radius:6px;background:{style.secondary_color};"></div>
                <span>{style.mood} · {style.visual_elements} · {style.layout}</span>
            </div>
            """,
            unsafe_allow_html=True,
        )


def slide_grid(session: GenerationSession):
    cols = st.columns(3)
    for i, slide in enumerate(session.slides):
        with cols[i % 3]:
            with st.container(border=True):
                if is_embedded_image(slide.image_url):
                    st.image(image_bytes(slide.image_url), use_container_width=True)
                else:
                    st.caption("No background image")
                st.markdown(f"**{slide.page_number}. {slide.title}**")
                if slide.subtitle:
                    st.markdown(f"*{slide.subtitle}*")
                busy = session.registry.is_in_flight(slide.id)
                if st.button("Regenerate image", key=f"regen_{slide.id}", disabled=busy, use_container_width=True):
                    with st.spinner(f"Redrawing slide {slide.page_number}..."):
                        if not asyncio.run(session.regenerate_slide(slide.id)):
                            st.warning("Could not regenerate this image, the previous one was kept.")
                    st.rerun()


# --- UI Rendering Stages ---

# STAGE 1: User Input
if st.session_state.stage == 'input':
    st.title("SlideForge: from a topic to a styled deck")
    topic = st.text_area("What is your presentation about?", "Mars Exploration", height=100)
    page_count = st.slider("Number of slides", min_value=3, max_value=20, value=5)
    template_picker()

    if st.button("Generate Presentation", type="primary", use_container_width=True) and topic.strip():
        st.session_state.topic = topic.strip()
        st.session_state.page_count = page_count
        st.session_state.session = new_session()
        st.session_state.stage = 'generating'
        st.rerun()

# STAGE 2: Generation
elif st.session_state.stage == 'generating':
    session: GenerationSession = st.session_state.session
    st.header(st.session_state.topic)
    bar = st.progress(0, text="Building the outline...")
    session.on_progress = lambda p: bar.progress(
        int(p), text="Building the outline..." if p < 10 else "Painting the slide backgrounds..."
    )
    asyncio.run(session.run(st.session_state.topic, st.session_state.page_count, st.session_state.template_style))
    st.session_state.stage = 'review'
    st.rerun()

# STAGE 3: Review, regenerate and export
elif st.session_state.stage == 'review':
    session: GenerationSession = st.session_state.session
    st.header(session.topic)
    st.caption(f"{session.page_count} slides")

    if session.status == GenerationStatus.ERROR:
        st.error(f"Generation failed: {session.error_message}", icon="⚠️")
        if st.button("Retry generation", type="primary"):
            st.session_state.stage = 'generating'
            st.rerun()
    else:
        slide_grid(session)
        st.markdown("---")
        if st.button("Export PowerPoint", type="primary", use_container_width=True):
            with st.spinner("Packing your presentation..."):
                try:
                    st.session_state.export_bytes = asyncio.run(session.export())
                except SlideForgeError as e:
                    st.session_state.export_bytes = None
                    st.error(f"Export failed, please try again: {e}", icon="⚠️")
        if st.session_state.export_bytes:
            st.download_button(
                label="Download Presentation (.pptx)",
                data=st.session_state.export_bytes,
                file_name=f"{session.topic}.pptx",
                mime="application/vnd.openxmlformats-officedocument.presentationml.presentation",
                use_container_width=True,
            )

    if st.button("Start Again!"):
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()
