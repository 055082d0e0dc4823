# cam_explainer/core/preprocessing.py

# Import torchvision transforms
import torchvision.transforms as T

from core.config import Config

IMAGENET_MEAN = [0.485, 0.456, 0.406]
IMAGENET_STD = [0.229, 0.224, 0.225]


def get_standard_transforms(image_size: int = Config.IMAGE_SIZE) -> T.Compose:
    """
    Resize a PIL image to a square network input and normalize it.
    No cropping, so the feature-map grid stays aligned with the full image.
    """
    return T.Compose([
        T.Resize((image_size, image_size)),
        T.ToTensor(),
        T.Normalize(mean=IMAGENET_MEAN, std=IMAGENET_STD),
    ])
