"""
Sample usage of the image preview library.

Demonstrates generating previews, inspecting branch failures, and tuning
quality. Replace file paths with your own images before running.
"""

import logging

from imgpreview import (
    FormatEncoder,
    OpenCVBackend,
    PreviewPipeline,
    SourceImage,
    TargetFormat,
    format_reduction,
    format_size,
    generate_previews,
)


def example_generate_previews():
    """Generate JPEG/WebP/PNG previews at a maximum width."""
    print("\n" + "=" * 60)
    print("EXAMPLE 1: Generate Previews")
    print("=" * 60)

    source = SourceImage.from_path("sample_image.jpg")
    result = generate_previews(source, {'max_width': 1200})

    if result.no_candidates:
        print("Nothing could be generated")
        return

    print(f"\n{'Format':<14} {'Size':<12} {'Change':<16} {'SSIM':<10}")
    print("-" * 55)
    for preview in result:
        print(
            f"{preview.label:<14} {format_size(preview.byte_size):<12} "
            f"{format_reduction(preview.reduction_percent):<16} {preview.quality_score:.4f}"
        )


def example_failure_diagnostics():
    """Show why a branch was dropped."""
    print("\n" + "=" * 60)
    print("EXAMPLE 2: Failure Diagnostics")
    print("=" * 60)

    source = SourceImage.from_path("sample_image.png")
    result = generate_previews(source, {'max_width': 800})

    for failure in result.failures:
        print(f"{failure.format.label}: {failure.stage} failed ({failure.error_kind}) {failure.message}")
        if failure.candidate is not None:
            print(f"  unscored candidate available: {format_size(failure.candidate.byte_size)}")


def example_quality_tradeoff():
    """Explore smaller files with a lower encoder quality."""
    print("\n" + "=" * 60)
    print("EXAMPLE 3: Quality Trade-off")
    print("=" * 60)

    source = SourceImage.from_path("sample_image.jpg")

    for quality in (0.99, 0.9, 0.75):
        pipeline = PreviewPipeline(
            quality=quality,
            formats=[TargetFormat.JPEG, TargetFormat.WEBP],
        )
        result = pipeline.generate_previews(source, {'max_width': 1200})
        for preview in result:
            print(
                f"q={quality:.2f} {preview.label:<8} {format_size(preview.byte_size):<12} "
                f"SSIM={preview.quality_score:.4f} ({preview.rating})"
            )


def example_opencv_backend():
    """Swap the codec without touching the pipeline."""
    print("\n" + "=" * 60)
    print("EXAMPLE 4: OpenCV Encoder Backend")
    print("=" * 60)

    pipeline = PreviewPipeline(encoder=FormatEncoder(OpenCVBackend()), verbose=True)
    pipeline.generate_previews(SourceImage.from_path("sample_image.png"), {'max_width': 1000})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("Image Preview Examples")
    print("=" * 60)
    print("Note: These examples require actual image files to run.")
    print("Replace file paths with your own images.")
    print("=" * 60)

    # Uncomment to run:
    # example_generate_previews()
    # example_failure_diagnostics()
    # example_quality_tradeoff()
    # example_opencv_backend()
