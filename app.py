"""Operator console using Streamlit."""

import tempfile
from pathlib import Path

import streamlit as st

from widgetbot import (
    ChatbotConfig,
    ChatService,
    DocumentLoader,
    IngestionPipeline,
    Tenant,
    TenantStore,
)
from widgetbot.config import config
from widgetbot.errors import WidgetBotError
from widgetbot.models import PersonaConfig
from widgetbot.pipeline import build_embedding_service
from widgetbot.prompts import LANGUAGES, RESPONSE_STYLES, TONE_DESCRIPTIONS

MAX_CONTEXT_PREVIEW_LENGTH = 200
NEW_TENANT_LABEL = "+ New chatbot"

config.setup_logging()
logger = config.get_logger(__name__)


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "tenant_store": None,
            "pipeline": None,
            "chat_service": None,
            "selected_tenant_id": None,
            "preview_history": [],
            "last_ingestion": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def reset_preview() -> None:
        """Forget the preview conversation when another tenant is selected."""
        st.session_state.preview_history = []
        st.session_state.last_ingestion = None

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the services are initialized.

        Returns:
            bool: True if the tenant store, pipeline and chat service exist.
        """
        return (
            st.session_state.get("tenant_store") is not None
            and st.session_state.get("pipeline") is not None
            and st.session_state.get("chat_service") is not None
        )


def initialize_system() -> bool:
    """Create the stores and services shared by the console.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Initializing services..."):
            tenant_store = TenantStore()
            pipeline = IngestionPipeline(
                tenant_store=tenant_store,
                embedding_service=build_embedding_service(),
            )
            st.session_state.tenant_store = tenant_store
            st.session_state.pipeline = pipeline
            st.session_state.chat_service = ChatService(
                tenant_store=tenant_store, pipeline=pipeline
            )
        logger.info("Operator console services initialized")
    except (ValueError, OSError, WidgetBotError) as e:
        logger.exception("Failed to initialize services")
        st.error(f"Failed to initialize services: {e}")
        return False
    else:
        return True


def load_uploaded_knowledge(uploaded_file) -> str | None:  # noqa: ANN001
    """Extract text from an uploaded PDF, TXT or Markdown file.

    Returns:
        The extracted text, or None if extraction fails.
    """
    suffix = Path(uploaded_file.name).suffix.lower()
    try:
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp_file:
            tmp_file.write(uploaded_file.getbuffer())
            tmp_file_path = Path(tmp_file.name)
        text = DocumentLoader.load_document(tmp_file_path)
        tmp_file_path.unlink()
    except (OSError, ValueError) as e:
        logger.exception("Knowledge upload failed")
        st.error(f"Failed to read '{uploaded_file.name}': {e}")
        return None
    else:
        return text


def select_tenant() -> Tenant | None:
    """Render the tenant picker in the sidebar.

    Returns:
        The selected tenant, or None when creating a new one.
    """
    tenants = st.session_state.tenant_store.list_tenants()
    labels = {f"{t.business_name or 'Unnamed'} ({t.id[:8]})": t for t in tenants}
    options = [NEW_TENANT_LABEL, *labels]

    current = st.session_state.selected_tenant_id
    index = next(
        (i for i, t in enumerate(labels.values(), 1) if t.id == current),
        0,
    )
    choice = st.selectbox("Chatbot", options, index=index)
    tenant = labels.get(choice)
    selected_id = tenant.id if tenant else None
    if selected_id != current:
        st.session_state.selected_tenant_id = selected_id
        SessionState.reset_preview()
    return tenant


def render_sidebar() -> Tenant | None:
    """Render the sidebar with service status and the tenant picker.

    Returns:
        The selected tenant, if any.
    """
    with st.sidebar:
        st.header("Services")
        if not SessionState.is_system_ready():
            if st.button("Initialize Services", use_container_width=True) and (
                initialize_system()
            ):
                st.rerun()
            return None

        pipeline = st.session_state.pipeline
        st.write(f"**Vector backend:** {pipeline.vector_store.backend}")
        retrieval = "Enabled" if pipeline.retrieval_enabled else "Disabled"
        st.write(f"**Retrieval:** {retrieval}")
        shared_key = "Set" if config.get_openrouter_api_key() else "Missing"
        st.write(f"**Shared completion key:** {shared_key}")

        st.divider()
        return select_tenant()


def render_tenant_form(tenant: Tenant | None) -> None:
    """Render the create/edit form for a tenant's profile and persona."""
    tenant = tenant or Tenant(id="")
    persona = tenant.config.persona
    st.header("Chatbot Settings" if tenant.id else "New Chatbot")

    tones = list(TONE_DESCRIPTIONS)
    styles = list(RESPONSE_STYLES)
    languages = list(LANGUAGES)

    with st.form("tenant_form"):
        col1, col2 = st.columns(2)
        with col1:
            business_name = st.text_input("Business name", tenant.business_name)
            industry = st.text_input("Industry", tenant.industry)
            location = st.text_input("Location", tenant.location)
            contact_phone = st.text_input("Contact phone", tenant.contact_phone)
            chatbot_name = st.text_input("Chatbot name", tenant.config.chatbot_name)
            greeting = st.text_input("Greeting", tenant.config.greeting)
        with col2:
            agent_name = st.text_input("Agent name", persona.agent_name)
            agent_role = st.text_input("Agent role", persona.agent_role)
            tone = st.selectbox(
                "Tone",
                tones,
                index=tones.index(persona.tone) if persona.tone in tones else 0,
            )
            chattiness = st.slider(
                "Chattiness", 0, 3, min(max(persona.chattiness, 0), 3)
            )
            response_style = st.selectbox(
                "Response style",
                styles,
                index=(
                    styles.index(persona.response_style)
                    if persona.response_style in styles
                    else 0
                ),
            )
            language = st.selectbox(
                "Language",
                languages,
                index=(
                    languages.index(persona.language)
                    if persona.language in languages
                    else 0
                ),
                format_func=LANGUAGES.get,
            )

        special_instructions = st.text_area(
            "Special instructions", persona.special_instructions
        )
        openrouter_api_key = st.text_input(
            "OpenRouter API key (optional)",
            tenant.config.openrouter_api_key,
            type="password",
        )
        email_notifications = st.checkbox(
            "Email conversation transcripts",
            tenant.config.notifications.email_notifications,
        )
        notification_email = st.text_input(
            "Notification email", tenant.config.notifications.notification_email
        )

        st.subheader("Knowledge")
        rag_content = st.text_area(
            "Knowledge text",
            tenant.rag_content,
            height=240,
            help="Separate topics with blank lines; each paragraph is indexed.",
        )
        uploaded_file = st.file_uploader(
            "Append text from a PDF, TXT or Markdown document",
            type=["pdf", "txt", "md"],
        )
        submitted = st.form_submit_button("Save", use_container_width=True)

    if not submitted:
        return

    if uploaded_file:
        extra = load_uploaded_knowledge(uploaded_file)
        if extra is None:
            return
        rag_content = "\n\n".join(part for part in (rag_content, extra) if part.strip())

    chatbot_config = ChatbotConfig(
        chatbot_name=chatbot_name or ChatbotConfig.chatbot_name,
        greeting=greeting or ChatbotConfig.greeting,
        openrouter_api_key=openrouter_api_key.strip(),
        persona=PersonaConfig(
            agent_name=agent_name.strip(),
            agent_role=agent_role.strip() or PersonaConfig.agent_role,
            tone=tone,
            chattiness=chattiness,
            response_style=response_style,
            special_instructions=special_instructions.strip(),
            language=language,
        ),
    )
    chatbot_config.notifications.email_notifications = email_notifications
    chatbot_config.notifications.notification_email = notification_email.strip()

    try:
        saved = st.session_state.tenant_store.save(
            Tenant(
                id=tenant.id,
                business_name=business_name.strip(),
                industry=industry.strip(),
                location=location.strip(),
                contact_phone=contact_phone.strip(),
                rag_content=rag_content,
                config=chatbot_config,
            )
        )
    except WidgetBotError as e:
        st.error(f"Failed to save chatbot: {e.message}")
        return

    st.session_state.selected_tenant_id = saved.id
    with st.spinner("Refreshing the knowledge index..."):
        try:
            st.session_state.last_ingestion = st.session_state.pipeline.refresh(
                saved.id
            )
        except WidgetBotError as e:
            stage = f" (stage: {e.stage})" if e.stage else ""
            st.error(f"Chatbot saved, but ingestion failed{stage}: {e.message}")
            return
    st.rerun()


def render_ingestion(tenant: Tenant) -> None:
    """Render the ingestion controls and the live index summary."""
    st.header("Knowledge Index")
    pipeline: IngestionPipeline = st.session_state.pipeline

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Indexed chunks**")
        st.markdown(f"**{pipeline.vector_store.count(tenant.id)}**")
    with col2:
        st.markdown("**Active generation**")
        st.markdown(f"`{pipeline.vector_store.active_generation(tenant.id) or '-'}`")

    if st.button("Run Ingestion", use_container_width=True):
        with st.spinner("Chunking and embedding knowledge text..."):
            try:
                st.session_state.last_ingestion = pipeline.ingest(tenant.id)
            except WidgetBotError as e:
                stage = f" (stage: {e.stage})" if e.stage else ""
                st.error(f"Ingestion failed{stage}: {e.message}")
                return
        st.rerun()

    result = st.session_state.last_ingestion
    if result is not None:
        st.success(result.message or f"Indexed {result.inserted_count} chunks.")

    if st.checkbox("Show Indexed Chunks (Debug)"):
        for chunk in pipeline.vector_store.list_chunks(tenant.id):
            with st.expander(f"Chunk {chunk.index + 1}", expanded=False):
                st.code(
                    chunk.content[:MAX_CONTEXT_PREVIEW_LENGTH] + "..."
                    if len(chunk.content) > MAX_CONTEXT_PREVIEW_LENGTH
                    else chunk.content,
                )


def render_preview_chat(tenant: Tenant) -> None:
    """Render a preview chat that answers exactly like the widget would."""
    st.header("Preview Chat")
    history = st.session_state.preview_history
    if not history:
        st.chat_message("assistant").write(tenant.config.greeting)
    for turn in history:
        st.chat_message(turn["role"]).write(turn["content"])

    message = st.chat_input("Ask your chatbot something...")
    if not message:
        return

    st.chat_message("user").write(message)
    with st.spinner("Thinking..."):
        try:
            reply = st.session_state.chat_service.respond(
                message,
                tenant.id,
                history,
                email_notifications=False,
            )
        except WidgetBotError as e:
            logger.exception("Preview chat failed")
            st.error(f"Chat failed: {e.message}")
            return

    history.extend([
        {"role": "user", "content": message},
        {"role": "assistant", "content": reply},
    ])
    st.rerun()


def render_delete(tenant: Tenant) -> None:
    """Render the control that deletes a chatbot and its knowledge index."""
    st.header("Delete Chatbot")
    confirmed = st.checkbox(
        f"I understand that {tenant.business_name or 'this chatbot'} and its "
        "knowledge index will be removed."
    )
    if not st.button("Delete", disabled=not confirmed, use_container_width=True):
        return

    try:
        st.session_state.pipeline.delete_tenant(tenant.id)
    except WidgetBotError as e:
        logger.exception("Failed to delete tenant %s", tenant.id)
        st.error(f"Failed to delete chatbot: {e.message}")
        return

    st.session_state.selected_tenant_id = None
    SessionState.reset_preview()
    st.rerun()


def main() -> None:
    """Main entry point for the operator console.

    Sets up the page, initializes session state, renders the sidebar, and
    shows the settings form, ingestion controls, preview chat and delete
    control for the selected chatbot.
    """
    st.set_page_config(
        page_title="WidgetBot Operator Console",
        layout="wide",
    )

    SessionState.initialize()

    st.title("WidgetBot Operator Console")
    st.markdown("---")

    tenant = render_sidebar()

    if not SessionState.is_system_ready():
        st.info("Please initialize the services using the sidebar to get started.")
        return

    render_tenant_form(tenant)
    if tenant is None:
        return

    st.markdown("---")
    render_ingestion(tenant)
    st.markdown("---")
    render_preview_chat(tenant)
    st.markdown("---")
    render_delete(tenant)


if __name__ == "__main__":
    main()
