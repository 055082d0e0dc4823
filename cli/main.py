# cam_explainer/cli/main.py

# Import CLI frameworks and async support
import asyncio
from pathlib import Path

import click
import matplotlib.pyplot as plt

from analysis.explain import ExplanationPipeline
from analysis.overlay import ORIENTATIONS
from analysis.prediction import InferenceService
from core.config import Config, init_runtime
from core.models import MODEL_REGISTRY
from core.postprocessing import save_heatmap, save_output
from utils.exceptions import ExplainerError
from utils.io import async_load_image
from utils.labels import load_labels
from utils.logger import configure_logging, get_logger
from utils.visualization import plot_confidence, plot_explanation

logger = get_logger(__name__)


@click.command()
@click.argument("images", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--model", default=Config.MODEL_NAME, type=click.Choice(sorted(MODEL_REGISTRY)),
              help="Model name to use")
@click.option("--layer", default=None, help="Layer to explain (defaults to the last conv layer)")
@click.option("--class-index", type=int, default=None, help="Explain this class instead of the top one")
@click.option("--opacity", default=Config.BLEND_OPACITY, show_default=True, help="Global overlay opacity")
@click.option("--levels", default=Config.RAMP_LEVELS, show_default=True, help="Color ramp levels")
@click.option("--colormap", default=Config.COLORMAP, show_default=True, help="matplotlib colormap name")
@click.option("--orientation", default=Config.HEATMAP_ORIENTATION, show_default=True,
              type=click.Choice(sorted(ORIENTATIONS)), help="Heatmap reorientation before rendering")
@click.option("--device", default=None, help="Torch device (defaults to cuda when available)")
@click.option("--seed", default=Config.SEED, show_default=True, help="Seed for randomly initialised weights")
@click.option("--no-pretrained", is_flag=True, help="Use randomly initialised weights")
@click.option("--labels-url", default=Config.LABELS_URL, help="Newline-separated class names")
@click.option("--figure", is_flag=True, help="Also save summary and top-k confidence figures")
@click.option("--output", default=Config.OUTPUT_DIR, show_default=True, help="Directory for output files")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(images, model, layer, class_index, opacity, levels, colormap, orientation,
         device, seed, no_pretrained, labels_url, figure, output, verbose):
    """
    Explain the prediction for each IMAGE with a Grad-CAM overlay.
    """
    configure_logging(verbose)
    context = init_runtime(device=device, seed=seed)
    try:
        # Model load happens once, before any image is processed
        svc = InferenceService.load(model, context=context, pretrained=not no_pretrained)
        svc.resolve_layer(layer)
        pipeline = ExplanationPipeline(svc, levels=levels, colormap=colormap,
                                       orientation=orientation, labels=load_labels(labels_url))
    except ExplainerError as e:
        raise click.ClickException(str(e)) from e

    failures = asyncio.run(_process_all(images, pipeline, Path(output), layer, class_index, opacity, figure))
    if failures:
        raise click.ClickException(f"{failures} of {len(images)} image(s) failed")


async def _process_all(images, pipeline, out_dir, layer, class_index, opacity, figure):
    """
    Load and explain several images concurrently; returns the number of failures.
    """
    tasks = [
        _process_one(Path(p), pipeline, out_dir, layer, class_index, opacity, figure)
        for p in images
    ]
    results = await asyncio.gather(*tasks)          # Run tasks concurrently
    return sum(1 for ok in results if not ok)


async def _process_one(path, pipeline, out_dir, layer, class_index, opacity, figure):
    """
    Load a single image, explain it and save the heatmap and composite.
    """
    try:
        img = await async_load_image(path)          # Async load
        # The pipeline is synchronous; keep the event loop free
        result = await asyncio.to_thread(pipeline.explain, img, layer, class_index, opacity)
        heat_path = save_heatmap(result.heatmap_image, out_dir / f"{path.stem}_heatmap.png")
        comp_path = save_output(result.composite, out_dir / f"{path.stem}_gradcam.png")
        if figure:
            _save_figures(path, img, result, pipeline, out_dir)
    except (ExplainerError, OSError) as e:
        # Unreadable images and write failures only fail this image
        click.echo(f"{path}: {e}", err=True)
        return False

    name = result.label or f"class {result.class_idx}"
    click.echo(f"{path}: {name} ({result.cam.confidence:.3f}) -> {comp_path.name}, {heat_path.name}")
    if result.degenerate:
        click.echo(f"{path}: no positive evidence found, overlay is empty", err=True)
    return True


def _save_figures(path, img, result, pipeline, out_dir):
    fig = plot_explanation(img, result, title=result.label)
    try:
        fig.savefig(out_dir / f"{path.stem}_summary.png", dpi=150, bbox_inches="tight")
    finally:
        plt.close(fig)
    fig = plot_confidence(result.cam.scores, pipeline.labels or [], top_k=Config.TOP_K)
    try:
        fig.savefig(out_dir / f"{path.stem}_confidence.png", dpi=150, bbox_inches="tight")
    finally:
        plt.close(fig)


# Run CLI when module is executed directly
if __name__ == "__main__":
    main()
