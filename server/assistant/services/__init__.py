from .gemini import (
    AIServiceError,
    filter_items_by_prompt,
    generate_notebook_name,
    generate_study_content,
    get_personalized_study_plan,
    get_simple_chat_response,
)
