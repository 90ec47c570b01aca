import os
import re
import json
import logging

from gemini import GeminiClient, CompletionError
from models import (
    ClassificationResult, InstructionResult, InstructionStep,
    WasteClassification, RecyclingInstructions,
)

logger = logging.getLogger(__name__)

__data = None
__client = None

ARTIFACTS_DIR = os.path.join(os.path.dirname(__file__), "artifacts")
GUIDES_FILE = "recycling_guides.json"

USER_DESCRIPTION_MARKER = ". User Description: "

CLASSIFY_PROMPT = """You are an AI assistant specializing in waste classification.
Analyze the attached photo and determine the type of waste material. Provide a basic classification that is easily understandable. Avoid overly specific details.
If you cannot tell what the material is, say so by including the word "Uncertain" in the waste type.
Return the waste type, your confidence level (0-1), and detailed characteristics of the waste material derived from image analysis."""

INSTRUCTIONS_PROMPT = """You are an expert in recycling and waste management.
Provide detailed recycling instructions for the following waste type, taking into account the specific details provided.
Include information such as appropriate recycling bins (color), preparation steps, and any other relevant details for proper disposal.
Be specific and precise, considering the details provided.

Waste Type: {waste_type}
Details: {details}
"""

# newline runs, or right before "2. " style numbering (never inside "10. ")
_STEP_SPLIT = re.compile(r'[\r\n]+|(?<!\d)(?=\d+\.\s)')
_STEP_MARKER = re.compile(r'^(?:[*\-•‣◦▪●⁃]|\d+\.\s+)')


class ClassificationError(Exception):
    pass


class InstructionError(Exception):
    pass


def load_artifacts():
    global __data
    global __client
    logger.info("loading saved artifacts...start")
    with open(os.path.join(ARTIFACTS_DIR, GUIDES_FILE), "r", encoding="utf-8") as f:
        __data = json.load(f)
    if __client is None:
        __client = GeminiClient.from_env()
    logger.info("loading saved artifacts...done (%d guides)", len(__data["guides"]))


def get_client():
    global __client
    if __client is None:
        __client = GeminiClient.from_env()
    return __client


def set_client(client):
    global __client
    __client = client


def adjust_confidence(waste_type, confidence):
    if "uncertain" in waste_type.lower():
        adjusted = max(0.75, confidence - 0.1)
    else:
        adjusted = min(0.98, confidence + 0.05)
    # published confidence always lands in [0.85, 0.98]
    return max(0.85, min(0.98, adjusted))


def classify_waste(photo, content_type):
    try:
        output = get_client().generate(CLASSIFY_PROMPT, WasteClassification, image=photo, mime_type=content_type)
    except CompletionError as e:
        logger.error("Classification error: %s", e)
        raise ClassificationError(f"Classification failed: {e}") from e

    result = ClassificationResult(
        waste_type=output.waste_type,
        confidence=adjust_confidence(output.waste_type, output.confidence),
        details=output.details,
    )
    logger.info("classified upload as %r (raw confidence %.2f, published %.2f)",
                result.waste_type, output.confidence, result.confidence)
    return result


def compose_details(details, user_description=None):
    if user_description and user_description.strip():
        return f"{details}{USER_DESCRIPTION_MARKER}{user_description}"
    return details


def generate_instructions(waste_type, details):
    prompt = INSTRUCTIONS_PROMPT.format(waste_type=waste_type, details=details)
    try:
        output = get_client().generate(prompt, RecyclingInstructions)
    except CompletionError as e:
        logger.error("Error providing instructions for %r: %s", waste_type, e)
        raise InstructionError(f"Failed to provide recycling instructions: {e}") from e
    return InstructionResult(recycling_instructions=output.recycling_instructions)


def format_steps(raw):
    """
    Splits free-form instruction text into clean steps.

    Never raises: text without any delimiter comes back as a single step and
    blank input as an empty list.
    """
    steps = []
    for segment in _STEP_SPLIT.split(raw or ""):
        segment = segment.strip()
        if not segment:
            continue
        step = _STEP_MARKER.sub('', segment, count=1).strip()
        if step:
            steps.append(step)
    return steps


def instruction_steps(raw):
    return [InstructionStep(position=i, text=step) for i, step in enumerate(format_steps(raw), start=1)]


def get_recycling_guide(waste_type):
    if __data is None:
        load_artifacts()
    guide = __data["guides"].get(waste_type.strip().lower())
    if guide is None:
        return {"waste_type": waste_type, "instructions": list(__data["default"])}
    return {"waste_type": guide["waste_type"], "instructions": list(guide["instructions"])}


def get_guide_names():
    if __data is None:
        load_artifacts()
    return sorted(__data["guides"])
