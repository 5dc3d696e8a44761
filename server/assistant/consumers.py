import asyncio
import base64
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from google.genai import types

from assistant.services.gemini import AIServiceError, get_client
from assistant.services.live import INPUT_AUDIO_MIME, build_live_config
from assistant.services.tools import run_tool
from users.models import AgentSettings

logger = logging.getLogger(__name__)


@database_sync_to_async
def _agent_settings(user):
    return AgentSettings.for_user(user)


@database_sync_to_async
def _run_tool(user, name, args):
    return run_tool(user, name, args)


class LiveAgentConsumer(AsyncWebsocketConsumer):
    """
    Bridges the browser microphone to a Gemini Live session.

    Client frames: {"audio_data": b64 pcm}, {"commit": true}, {"mute": bool},
    {"text": str}, {"screen_context": str}.
    Server frames: status, audio, text, navigate, tool, error.
    """

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            await self.close(code=4001)
            return
        self.user = user
        self.muted = False
        await self.accept()

        try:
            client = get_client()
        except AIServiceError as e:
            await self._send({"type": "error", "msg": str(e)})
            await self.close()
            return

        agent_settings = await _agent_settings(user)
        try:
            self.live_ctx = client.aio.live.connect(
                model=settings.GEMINI_LIVE_MODEL,
                config=build_live_config(user, agent_settings),
            )
            self.live_session = await self.live_ctx.__aenter__()
            self.receive_task = asyncio.create_task(self.proxy_gemini_to_client())
            await self._send({"type": "status", "msg": "connected", "voice": agent_settings.voice})
            logger.info("live agent connected user=%s voice=%s", user.pk, agent_settings.voice)
        except Exception as e:
            logger.exception("gemini live connect failed user=%s", user.pk)
            msg = str(e)
            if "quota" in msg.lower():
                msg = "Cota da API do Google excedida."
            await self._send({"type": "error", "msg": msg})
            await self.close()

    async def disconnect(self, close_code):
        task = getattr(self, "receive_task", None)
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if hasattr(self, "live_ctx"):
            try:
                await self.live_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning("error closing gemini live session: %s", e)

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data or not hasattr(self, "live_session"):
            return
        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            await self._send({"type": "error", "msg": "invalid_json"})
            return

        try:
            await self.forward_frame(data)
        except ValueError:
            # binascii.Error from a malformed audio chunk
            await self._send({"type": "error", "msg": "invalid_audio"})
        except Exception as e:
            logger.error("live receive error user=%s: %s", self.user.pk, e)
            await self._send({"type": "error", "msg": "Falha ao enviar para o assistente."})

    async def forward_frame(self, data):
        session = self.live_session
        if "mute" in data:
            self.muted = bool(data["mute"])
            await self._send({"type": "status", "msg": "muted" if self.muted else "unmuted"})
        elif "audio_data" in data:
            if self.muted:
                return
            await session.send_realtime_input(
                audio=types.Blob(data=base64.b64decode(data["audio_data"], validate=True), mime_type=INPUT_AUDIO_MIME),
            )
        elif "commit" in data:
            await session.send_realtime_input(audio_stream_end=True)
        elif "text" in data:
            await session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=str(data["text"]))]),
                turn_complete=True,
            )
        elif "screen_context" in data:
            note = f"[Contexto da tela do aluno]\n{data['screen_context']}"
            await session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=note)]),
                turn_complete=False,
            )

    async def proxy_gemini_to_client(self):
        try:
            # receive() ends at each turn_complete; keep listening across turns
            while True:
                async for response in self.live_session.receive():
                    if response.data:
                        await self._send({"type": "audio", "data": base64.b64encode(response.data).decode("utf-8")})

                    content = response.server_content
                    if content and content.output_transcription and content.output_transcription.text:
                        await self._send({"type": "text", "content": content.output_transcription.text})

                    if response.tool_call:
                        await self.handle_tool_call(response.tool_call)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("gemini live proxy error user=%s", self.user.pk)
            await self._send({"type": "error", "msg": "Conexão com o assistente perdida."})

    async def handle_tool_call(self, tool_call):
        responses = []
        for fc in tool_call.function_calls or []:
            result, command = await _run_tool(self.user, fc.name, fc.args)
            logger.info("live tool call user=%s name=%s", self.user.pk, fc.name)
            await self._send({"type": "tool", "name": fc.name, "args": dict(fc.args or {})})
            if command:
                await self._send(command)
            responses.append(types.FunctionResponse(id=fc.id, name=fc.name, response={"result": result}))
        if responses:
            await self.live_session.send_tool_response(function_responses=responses)

    async def _send(self, payload):
        await self.send(text_data=json.dumps(payload, ensure_ascii=False))
