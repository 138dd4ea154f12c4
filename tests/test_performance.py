"""Performance and stress tests for WidgetBot components.

The time bounds are loose; they catch accidental quadratic behavior rather
than benchmark a particular machine.
"""

import os
import time

import psutil

from widgetbot import KnowledgeChunk


def embedded_chunks(service, tenant_id, count):
    contents = [f"Performance test content {i}" for i in range(count)]
    return [
        KnowledgeChunk(tenant_id=tenant_id, index=i, content=content, embedding=vector)
        for i, (content, vector) in enumerate(
            zip(contents, service.embed(contents), strict=True)
        )
    ]


def test_chunking_large_knowledge_text(text_chunker_default):
    paragraphs = "\n\n".join(
        f"Paragraph {i}: our store ships worldwide." for i in range(5000)
    )

    start_time = time.time()
    chunks = text_chunker_default.chunk_text(paragraphs, "performance_test")
    chunk_time = time.time() - start_time

    assert len(chunks) == 1000, "Chunk cap should bound the output"
    assert chunk_time < 0.5, f"Chunking took too long: {chunk_time:.3f}s"


def test_replace_all_and_query_at_chunk_cap(vector_store, mock_embedding_service):
    chunks = embedded_chunks(mock_embedding_service, "tenant-perf", 1000)

    storage_start = time.time()
    vector_store.replace_all("tenant-perf", chunks)
    storage_time = time.time() - storage_start

    query_embedding = mock_embedding_service.get_embedding("test query")
    search_start = time.time()
    results = vector_store.query(
        "tenant-perf", query_embedding, threshold=-1.0, top_k=10
    )
    search_time = time.time() - search_start

    assert len(results) == 10, "Should return requested number of results"
    assert storage_time < 5.0, f"Storage too slow: {storage_time:.3f}s"
    assert search_time < 1.0, f"Search too slow: {search_time:.3f}s"


def test_repeated_replacement_keeps_memory_stable(
    temp_vector_store, mock_embedding_service
):
    process = psutil.Process(os.getpid())
    initial_memory = process.memory_info().rss / 1024 / 1024

    for _ in range(5):
        temp_vector_store.replace_all(
            "tenant-mem", embedded_chunks(mock_embedding_service, "tenant-mem", 200)
        )

        memory_growth = process.memory_info().rss / 1024 / 1024 - initial_memory
        assert memory_growth < 50, f"Excessive memory growth: {memory_growth:.1f}MB"

    assert len(temp_vector_store.list_chunks("tenant-mem")) == 200


def test_many_ingestions_across_tenants(pipeline, tenant_factory):
    tenants = [
        tenant_factory(f"Tenant {i} ships in {i} days.\n\nOpen 9-5.")
        for i in range(20)
    ]

    start_time = time.time()
    for tenant in tenants:
        assert pipeline.ingest(tenant.id).inserted_count == 2
    total_time = time.time() - start_time

    assert total_time < 10.0, f"Ingestion too slow: {total_time:.1f}s"
    for tenant in tenants:
        results = pipeline.retrieve(tenant.id, "Open 9-5.", threshold=0.9)
        assert [chunk.tenant_id for chunk, _ in results] == [tenant.id]
