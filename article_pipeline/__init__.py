"""
Article Pipeline

Multi-stage long-form article generation: draft, validate, humanize,
internal links, monetization, quality scoring with bounded auto-fix,
and risk classification gating auto-publish.

Usage:
    from article_pipeline.content_pipeline import get_pipeline
    from article_pipeline.models import ContentIdea, GenerationOptions

    pipeline = get_pipeline()
    article = await pipeline.generate(
        ContentIdea(title="Best Online MBA Programs", keywords=("online mba",)),
        GenerationOptions(content_type="ranking", target_word_count=1800),
    )
"""

__version__ = "1.0.0"
