"""Prompt builders for gallery image analysis."""


def build_analysis_prompt() -> str:
    """Return the fixed instruction sent alongside every image."""
    return (
        "Analyze this image and return STRICT JSON only (no surrounding text or markdown):\n"
        "{\n"
        '  "description": "...",          // 2-3 sentence detailed description\n'
        '  "tags": ["tag1","tag2",...], // 5-10 relevant tags\n'
        '  "colors": ["#hex1","#hex2"]  // dominant colors as hex strings\n'
        "}\n"
        "Respond only with the JSON object in the exact shape above."
    )


def build_messages(image_b64: str, mime_type: str = "image/jpeg") -> list:
    """Build the Chat Completions message list carrying the image as a data URL."""
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_analysis_prompt()},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
                },
            ],
        }
    ]
