"""System instruction that keeps the generation service on topic."""
from config.config import TopicConfig


def build_system_instruction(topic: TopicConfig) -> str:
    """
    Build the scope rules for one topic.

    Rebuilt whenever the topic changes; a session keeps the instruction it
    was created with.
    """
    name = topic.topic
    return (
        f'You are a specialized AI assistant strictly focused on the topic: "{name}".\n'
        "\n"
        f"Scope definition: {topic.topic_description}.\n"
        "\n"
        "Rules:\n"
        f"1. You MUST answer questions related to {name} accurately and helpfully.\n"
        f"2. If a user asks a question unrelated to {name}, you MUST politely decline.\n"
        "3. Do NOT answer off-topic questions, even if you know the answer.\n"
        f"4. When declining, steer the user back to the topic of {name}.\n"
        f"5. Keep your tone professional, helpful, and enthusiastic about {name}.\n"
        "6. Do not mention that you are a language model, simply state you are the "
        f"{topic.assistant_name} focused on {name}.\n"
    )


def build_welcome_text(topic: TopicConfig) -> str:
    return f"Hello! I am {topic.assistant_name}. I am here to discuss {topic.topic}. Ask me anything!"


def build_rejection_text(topic: TopicConfig) -> str:
    return (
        f"I'm sorry, but that doesn't seem related to **{topic.topic}**. \n\n"
        f"I can only answer questions about {topic.topic.lower()}. "
        "Please try rephrasing or ask something else!"
    )
