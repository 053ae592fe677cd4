# examples/quickstart.py
"""
Quickstart — token-budget via dict config.

Simulates a few chat turns: estimate each message while "rendering" the
prompt, then feed back the input-token count the API reported. Run with:
  python examples/quickstart.py
"""

from token_budget import ChatMessage, HybridTokenEstimator, ModelInfo


def main():
    estimator = HybridTokenEstimator.from_dict({
        "storage_path": "~/.token_budget/calibration.json",
    })
    model = ModelInfo(family="claude", max_input_tokens=200_000)

    messages = [ChatMessage.user("Summarise the benefits of functional programming.")]
    # Pretend the provider's tokenizer counts ~15% more than our estimate
    simulated_overhead = 1.15

    with estimator:
        for turn in range(5):
            rendered = sum(estimator.estimate(m, model).tokens for m in messages)
            limit = estimator.get_effective_limit(model)
            print(f"Turn {turn + 1}: rendered {rendered} tokens, budget {limit.limit:,} ({limit.confidence})")

            estimator.record_actual(messages, model, round(rendered * simulated_overhead))

            messages.append(ChatMessage.assistant(f"Answer number {turn + 1}, with several points."))
            messages.append(ChatMessage.user("Tell me more."))

        conversation = estimator.estimate_conversation(messages, model)
        print(
            f"\nNext request: {conversation.tokens} tokens ({conversation.source}), "
            f"{conversation.known_tokens} known + {conversation.estimated_tokens} estimated"
        )

        for family, info in estimator.status().items():
            print(
                f"{family}: factor {info['correction_factor']}, "
                f"{info['sample_count']} samples, drift {info['drift_pct']}%, "
                f"confidence {info['confidence']}"
            )


if __name__ == "__main__":
    main()
