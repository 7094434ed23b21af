# services/chunking.py
"""Page-aware text chunking"""
from typing import List

from langchain_core.documents import Document as LangchainDocument
from langchain_text_splitters import RecursiveCharacterTextSplitter

from core.domain import DocumentChunk
from config import settings

SEPARATORS = ["\n\n", "\n", ". ", "; ", ", ", " ", ""]


class TextChunker:
    """Splits extracted pages into overlapping chunks with stable ids."""

    def __init__(self, chunk_size: int = settings.CHUNK_SIZE, chunk_overlap: int = settings.CHUNK_OVERLAP):
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=SEPARATORS,
        )

    def chunk(self, document_id: str, pages: List[str], source: str = "") -> List[DocumentChunk]:
        docs = [
            LangchainDocument(page_content=text, metadata={"page": page_number, "source": source})
            for page_number, text in enumerate(pages, start=1)
            if text and text.strip()
        ]
        split_docs = self.text_splitter.split_documents(docs)

        chunks: List[DocumentChunk] = []
        for doc in split_docs:
            content = doc.page_content.strip()
            if not content:
                continue
            chunk_index = len(chunks)
            chunks.append(
                DocumentChunk(
                    # Deterministic id: re-ingesting a document yields the same keys
                    id=f"{document_id}:{chunk_index}",
                    content=content,
                    document_id=document_id,
                    chunk_index=chunk_index,
                    page_number=doc.metadata.get("page"),
                    metadata={
                        "source": doc.metadata.get("source", source),
                        "page": doc.metadata.get("page"),
                        "char_count": len(content),
                    },
                )
            )
        return chunks
