"""Knowledge file loading and paragraph-based text chunking."""

import re
from pathlib import Path

import pypdf

from .config import config
from .models import KnowledgeChunk

logger = config.get_logger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n{2,}")
TEXT_EXTENSIONS = frozenset({".txt", ".md"})


class DocumentLoader:
    """Extracts knowledge text from uploaded PDF, TXT and Markdown files."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Load text content from a PDF file.

        Pages are separated by blank lines so each page starts a new paragraph.

        Returns:
            The extracted text content from the PDF as a string.
        """
        try:
            with file_path.open("rb") as file:
                pdf_reader = pypdf.PdfReader(file)
                pages = [
                    (page.extract_text() or "").strip() for page in pdf_reader.pages
                ]
        except Exception:
            logger.exception("Error loading PDF %s", file_path)
            raise
        else:
            return "\n\n".join(page for page in pages if page)

    @staticmethod
    def load_txt(file_path: Path) -> str:
        """Load text content from a TXT file.

        Returns:
            The extracted text content from the TXT file as a string.
        """
        try:
            with file_path.open(encoding="utf-8") as file:
                text = file.read()
            logger.info("Successfully loaded TXT file %s", file_path.name)
        except Exception:
            logger.exception("Error loading TXT %s", file_path)
            raise
        else:
            return text

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Load document based on file extension.

        Args:
            file_path: Path to the document file.

        Returns:
            The text content of the document as a string.

        Raises:
            ValueError: If the file type is not supported.
        """
        file_ext = file_path.suffix.lower()
        if file_ext == ".pdf":
            return cls.load_pdf(file_path)
        if file_ext in TEXT_EXTENSIONS:
            return cls.load_txt(file_path)
        msg = f"Unsupported file type: {file_ext}"
        raise ValueError(msg)


class TextChunker:
    """Splits knowledge text on paragraph breaks, then into fixed-size slices.

    Slicing ignores word boundaries. Output beyond ``max_chunks`` is dropped.
    """

    def __init__(self, chunk_size: int = 700, max_chunks: int = 1000) -> None:
        """Initialize the TextChunker.

        Args:
            chunk_size: Maximum characters per chunk.
            max_chunks: Maximum number of chunks returned for one text.

        Raises:
            ValueError: If either limit is not positive.
        """
        if chunk_size <= 0 or max_chunks <= 0:
            msg = "chunk_size and max_chunks must be positive"
            raise ValueError(msg)
        self.chunk_size = chunk_size
        self.max_chunks = max_chunks

    def chunk(self, text: str, max_size: int | None = None) -> list[str]:
        """Split text into bounded-size passages.

        Args:
            text: Raw knowledge text.
            max_size: Override for ``chunk_size``.

        Returns:
            Ordered passages; empty for blank input.

        Raises:
            ValueError: If ``max_size`` is not positive.
        """
        size = self.chunk_size if max_size is None else max_size
        if size <= 0:
            msg = "max_size must be positive"
            raise ValueError(msg)
        paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(text or "")]

        chunks: list[str] = []
        for paragraph in paragraphs:
            if not paragraph:
                continue
            if len(paragraph) <= size:
                chunks.append(paragraph)
                continue
            chunks.extend(
                paragraph[start : start + size]
                for start in range(0, len(paragraph), size)
            )

        if len(chunks) > self.max_chunks:
            logger.warning(
                "Dropping %d chunks beyond the %d chunk cap",
                len(chunks) - self.max_chunks,
                self.max_chunks,
            )
            chunks = chunks[: self.max_chunks]

        logger.info("Text split into %d chunks", len(chunks))
        return chunks

    def chunk_text(
        self,
        text: str,
        tenant_id: str,
        source: str = "rag_content",
    ) -> list[KnowledgeChunk]:
        """Split text and wrap each passage as a KnowledgeChunk.

        Returns:
            Chunks with sequential indices starting at 0.
        """
        return [
            KnowledgeChunk(
                tenant_id=tenant_id,
                index=i,
                content=content,
                source=source,
                metadata={"source": source, "index": i, "length": len(content)},
            )
            for i, content in enumerate(self.chunk(text))
        ]
