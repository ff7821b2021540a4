"""Built-in API templates.

Each template describes one vendor wire format. Built-ins are registered with
``is_builtin=True`` and cannot be edited or removed through the registry.
"""
import json
from typing import Dict, List

from ..models import ModelDefinition, PerKind, Template, VoiceDefinition


def _body(obj: dict) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


OPENAI_VOICES = [
    VoiceDefinition(id="alloy", name="Alloy", gender="neutral"),
    VoiceDefinition(id="ash", name="Ash", gender="neutral"),
    VoiceDefinition(id="coral", name="Coral", gender="female"),
    VoiceDefinition(id="echo", name="Echo", gender="male"),
    VoiceDefinition(id="fable", name="Fable", gender="neutral"),
    VoiceDefinition(id="nova", name="Nova", gender="female"),
    VoiceDefinition(id="onyx", name="Onyx", gender="male"),
    VoiceDefinition(id="sage", name="Sage", gender="neutral"),
    VoiceDefinition(id="shimmer", name="Shimmer", gender="female"),
]

OPENAI_STANDARD_VOICES = [v for v in OPENAI_VOICES if v.id in ("alloy", "echo", "fable", "onyx", "nova", "shimmer")]

OPENAI_FORMATS = ["mp3", "opus", "aac", "flac", "wav", "pcm"]

openai_template = Template(
    id="openai",
    name="OpenAI compatible",
    description="OpenAI Whisper / TTS and any relay exposing the same API shape",
    default_api_url="https://api.openai.com/v1",
    default_method="POST",
    auth_type="bearer",
    request_body_template=PerKind(
        asr=_body({"model": "{model}", "language": "{language}", "response_format": "json"}),
        tts=_body({
            "model": "{model}",
            "input": "{text}",
            "voice": "{voice}",
            "response_format": "mp3",
            "speed": "{speed}",
        }),
    ),
    multipart=["asr"],
    response_text_path="text",
    response_audio_path="",
    response_audio_format="stream",
    error_path="error.message",
    models=[
        ModelDefinition(
            id="whisper-1",
            name="Whisper V1",
            type="asr",
            supported_languages=["zh", "en", "ja", "ko", "es", "fr", "de", "ru", "ar", "hi", "pt", "it"],
            max_file_size=25 * 1024 * 1024,
        ),
        ModelDefinition(id="gpt-4o-mini-tts", name="GPT-4o Mini TTS", type="tts", voices=OPENAI_VOICES,
                        supported_formats=OPENAI_FORMATS, speed_range=(0.25, 4.0)),
        ModelDefinition(id="tts-1", name="TTS Standard", type="tts", voices=OPENAI_STANDARD_VOICES,
                        supported_formats=OPENAI_FORMATS, speed_range=(0.25, 4.0)),
        ModelDefinition(id="tts-1-hd", name="TTS HD", type="tts", voices=OPENAI_STANDARD_VOICES,
                        supported_formats=OPENAI_FORMATS, speed_range=(0.25, 4.0)),
    ],
    default_model=PerKind(asr="whisper-1", tts="gpt-4o-mini-tts"),
    allow_custom_model=True,
)

qwen_template = Template(
    id="qwen",
    name="Qwen (DashScope)",
    description="Alibaba DashScope paraformer recognition and Qwen3-TTS synthesis",
    default_api_url="https://dashscope.aliyuncs.com/api/v1/services/aigc/multimodal-generation/generation",
    default_method="POST",
    auth_type="bearer",
    request_body_template=PerKind(
        asr=_body({"model": "{model}", "input": {"audio": "{audioBase64}"}, "parameters": {}}),
        tts=_body({
            "model": "{model}",
            "input": {"text": "{text}", "voice": "{voice}", "language_type": "{language_type}"},
        }),
    ),
    response_text_path="output.text",
    # Falls back to output.audio.url when the inline data is empty
    response_audio_path="output.audio.data",
    response_audio_format="base64",
    error_path="message",
    models=[
        ModelDefinition(id="paraformer-v2", name="Paraformer V2", type="asr",
                        supported_languages=["zh", "en", "ja", "ko", "es", "fr", "de", "ru", "ar", "hi"],
                        max_file_size=25 * 1024 * 1024),
        ModelDefinition(
            id="qwen3-tts-flash",
            name="Qwen3-TTS Flash",
            type="tts",
            voices=[
                VoiceDefinition(id="Cherry", name="Cherry", gender="female"),
                VoiceDefinition(id="Ethan", name="Ethan", gender="male"),
                VoiceDefinition(id="Jennifer", name="Jennifer", gender="female"),
                VoiceDefinition(id="Ryan", name="Ryan", gender="male"),
                VoiceDefinition(id="Dylan", name="Dylan", gender="male"),
            ],
            supported_formats=["mp3", "wav", "pcm"],
            speed_range=(0.5, 2.0),
        ),
    ],
    default_model=PerKind(asr="paraformer-v2", tts="qwen3-tts-flash"),
    allow_custom_model=True,
)

doubao_template = Template(
    id="doubao",
    name="Doubao (Volcengine)",
    description="ByteDance Volcengine speech recognition / synthesis over HTTP",
    default_api_url="https://ark.cn-beijing.volces.com/api/v3",
    default_method="POST",
    auth_type="bearer",
    request_body_template=PerKind(
        asr=_body({"model": "{model}", "audio": "{audio}", "language": "{language}", "format": "{format}"}),
        tts=_body({"model": "{model}", "text": "{text}", "voice": "{voice}", "speed": "{speed}", "volume": "{volume}"}),
    ),
    response_text_path="result.text",
    response_audio_path="result.audio",
    response_audio_format="base64",
    error_path="error.message",
    default_model=PerKind(asr="bigmodel-flash"),
)

CARTESIA_VOICES = [
    VoiceDefinition(id="694f9389-aac1-45b6-b726-9d9369183238", name="British Lady", gender="female", language="en"),
    VoiceDefinition(id="a0e99841-438c-4a64-b679-ae501e7d6091", name="Barbershop Man", gender="male", language="en"),
    VoiceDefinition(id="79a125e8-cd45-4c13-8a67-188112f4dd22", name="Calm Lady", gender="female", language="en"),
    VoiceDefinition(id="87748186-23bb-4158-a1eb-332911b0b708", name="Newsman", gender="male", language="en"),
]

cartesia_template = Template(
    id="cartesia",
    name="Cartesia",
    description="Cartesia Sonic synthesis, returns the audio bytes directly",
    default_api_url="https://api.cartesia.ai/tts/bytes",
    default_method="POST",
    auth_type="apikey",
    request_body_template=PerKind(
        tts=_body({
            "model_id": "{model}",
            "transcript": "{text}",
            "voice": {"mode": "id", "id": "{voice}"},
            "output_format": {"container": "mp3", "encoding": "mp3", "sample_rate": 44100},
            "language": "{language}",
            "speed": "{speed}",
        }),
    ),
    response_audio_path="",
    response_audio_format="stream",
    error_path="error.message",
    models=[
        ModelDefinition(id=model_id, name=name, type="tts", voices=CARTESIA_VOICES,
                        supported_formats=["wav", "pcm", "mp3", "flac", "mulaw"], speed_range=(0.5, 2.0))
        for model_id, name in (("sonic-3", "Sonic 3"), ("sonic-english", "Sonic English"),
                               ("sonic-multilingual", "Sonic Multilingual"))
    ],
    default_model=PerKind(tts="sonic-3"),
    allow_custom_model=False,
)

minimax_template = Template(
    id="minimax",
    name="MiniMax",
    description="MiniMax T2A v2 over HTTP, audio returned hex encoded",
    default_api_url="https://api.minimax.chat/v1/t2a_v2",
    default_method="POST",
    auth_type="bearer",
    request_body_template=PerKind(
        tts=_body({
            "model": "{model}",
            "text": "{text}",
            "stream": False,
            "voice_setting": {"voice_id": "{voice}", "speed": "{speed}", "vol": 1, "pitch": 0},
        }),
    ),
    response_audio_path="data.audio",
    response_audio_format="hex",
    error_path="base_resp.status_msg",
    error_code_path="base_resp.status_code",
    success_code=0,
    models=[
        ModelDefinition(id="speech-02-turbo", name="Speech 02 Turbo", type="tts",
                        voices=[VoiceDefinition(id="male-qn-qingse", name="Qingse", gender="male")]),
        ModelDefinition(id="speech-02-hd", name="Speech 02 HD", type="tts",
                        voices=[VoiceDefinition(id="male-qn-qingse", name="Qingse", gender="male")]),
    ],
    default_model=PerKind(tts="speech-02-turbo"),
)

deepgram_template = Template(
    id="deepgram",
    name="Deepgram",
    description="Deepgram Aura synthesis, streamed audio response",
    default_api_url="https://api.deepgram.com/v1/speak?model={model}",
    default_method="POST",
    auth_type="custom",
    auth_header="Authorization: Token {api_key}",
    request_body_template=PerKind(tts=_body({"text": "{text}"})),
    response_audio_path="",
    response_audio_format="stream",
    error_path="err_msg",
    models=[
        ModelDefinition(id="aura-2-thalia-en", name="Aura 2 Thalia", type="tts"),
        ModelDefinition(id="aura-2-andromeda-en", name="Aura 2 Andromeda", type="tts"),
    ],
    default_model=PerKind(tts="aura-2-thalia-en"),
)

elevenlabs_template = Template(
    id="elevenlabs",
    name="ElevenLabs",
    description="ElevenLabs text-to-speech and Scribe speech-to-text",
    default_api_url="https://api.elevenlabs.io/v1",
    default_method="POST",
    auth_type="custom",
    auth_header="xi-api-key: {api_key}",
    request_body_template=PerKind(
        asr=_body({"model_id": "{model}", "language_code": "{language}"}),
        tts=_body({"text": "{text}", "model_id": "{model}"}),
    ),
    multipart=["asr"],
    response_text_path="text",
    response_audio_path="",
    response_audio_format="stream",
    error_path="detail.message",
    models=[
        ModelDefinition(id="scribe_v1", name="Scribe V1", type="asr"),
        ModelDefinition(id="eleven_flash_v2_5", name="Flash v2.5", type="tts",
                        voices=[VoiceDefinition(id="21m00Tcm4TlvDq8ikWAM", name="Rachel", gender="female")]),
        ModelDefinition(id="eleven_multilingual_v2", name="Multilingual v2", type="tts",
                        voices=[VoiceDefinition(id="21m00Tcm4TlvDq8ikWAM", name="Rachel", gender="female")]),
    ],
    default_model=PerKind(asr="scribe_v1", tts="eleven_flash_v2_5"),
)

custom_template = Template(
    id="custom",
    name="Custom",
    description="Fully user-defined request and response shape",
    default_api_url="",
    default_method="POST",
    auth_type="bearer",
    request_body_template=PerKind(asr="{}", tts="{}"),
    response_text_path="text",
    response_audio_path="audio",
    response_audio_format="base64",
    error_path="error.message",
)


BUILTIN_TEMPLATES: List[Template] = [
    openai_template,
    qwen_template,
    doubao_template,
    cartesia_template,
    minimax_template,
    deepgram_template,
    elevenlabs_template,
    custom_template,
]


def builtin_templates() -> Dict[str, Template]:
    return {t.id: t.model_copy(update={"is_builtin": True}, deep=True) for t in BUILTIN_TEMPLATES}
