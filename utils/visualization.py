# cam_explainer/utils/visualization.py

# Import plotting libraries
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from utils.labels import label_for

sns.set_style("whitegrid")


def plot_confidence(probs, labels, top_k=5):
    """
    Plot the top_k class probabilities as a horizontal bar chart.
    """
    probs = np.asarray(probs)
    top_k = min(top_k, probs.size)
    top = probs.argsort()[-top_k:][::-1]  # Indices of top_k probabilities
    fig, ax = plt.subplots(figsize=(6, 4))
    # Draw bars
    ax.barh(range(top_k), probs[top], color="skyblue")
    ax.set_yticks(range(top_k))
    ax.set_yticklabels([label_for(labels, int(i)) for i in top])
    ax.invert_yaxis()
    ax.set_xlabel("Probability")
    ax.set_title("Top Predictions")
    fig.tight_layout()
    return fig


def plot_explanation(original, explanation, title=None):
    """
    Three panels: source image, heatmap at feature-map resolution, composite.
    """
    fig, axes = plt.subplots(1, 3, figsize=(15, 5))
    axes[0].imshow(original)
    axes[0].set_title("Original Image")
    axes[1].imshow(explanation.heatmap_image, cmap="gray", vmin=0, vmax=255)
    h, w = explanation.heatmap_image.shape
    axes[1].set_title(f"Heatmap ({h}x{w})")
    axes[2].imshow(explanation.composite)
    axes[2].set_title(title or f"Grad-CAM class {explanation.class_idx}")
    for ax in axes:
        ax.axis("off")
        ax.grid(False)
    fig.tight_layout()
    return fig
