from google.genai import types

from assistant.services.tools import FUNCTION_DECLARATIONS, visible_views

LIVE_PERSONA = """Você é o Ed, tutor de voz da plataforma Procap-G200. Fale em português do Brasil,
com frases curtas e naturais, como numa conversa. O aluno se chama {pseudonym}.
Para mexer na interface use sempre as ferramentas. Telas disponíveis: {views}.

Fluxo 1, abrir um item específico (ex.: um caderno de questões):
1. Chame findContent na tela certa com o termo pedido, ex. findContent(viewName="Questões", searchTerm="SFN").
2. Escolha o item na lista devolvida e chame navigateTo com o id dele, ex. navigateTo(viewName="Questões", itemId="<id>").
3. Nunca chame navigateTo com o nome do item, sempre com o id. Se findContent não achar nada, diga isso ao aluno.

Fluxo 2, filtrar uma tela por uma fonte (ex.: flashcards de uma apostila):
1. Chame findContent na tela "Fontes" para obter o título completo da fonte.
2. Chame navigateTo na tela desejada passando esse título completo em term.

Fluxo 3, informações gerais (ex.: listar cadernos):
1. Chame queryTable nas tabelas question_notebooks ou sources, ex. queryTable(tableName="question_notebooks", columns="name").
2. Use o resultado para responder ou para escolher um item e seguir o fluxo 1.
"""

INPUT_AUDIO_MIME = "audio/pcm;rate=16000"


def build_system_instruction(user, agent_settings=None):
    views = ", ".join(v["name"] for v in visible_views(user))
    text = LIVE_PERSONA.format(views=views, pseudonym=user.pseudonym)
    extra = (agent_settings.system_prompt if agent_settings else "").strip()
    if extra:
        text += f"\n\nInstruções do aluno:\n{extra}"
    return text


def build_live_config(user, agent_settings=None):
    voice = agent_settings.voice if agent_settings else "Zephyr"
    return types.LiveConnectConfig(
        response_modalities=["AUDIO"],
        system_instruction=build_system_instruction(user, agent_settings),
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
            ),
        ),
        tools=[types.Tool(function_declarations=FUNCTION_DECLARATIONS)],
        output_audio_transcription=types.AudioTranscriptionConfig(),
    )
