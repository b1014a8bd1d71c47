"""
Scoring profiles.

Quick profiles use the cheap features available synchronously at
discovery time; refined profiles use the full feature sets. The cloud
profile is what the remote scoring service applies to submitted vectors.
"""
from .ensemble import ScoringProfile

TEXT_QUICK = ScoringProfile(
    name='text_quick',
    weights={
        'char_entropy': 0.35,
        'sentence_uniformity': 0.20,
        'stopword_density': 0.15,
        'list_density': 0.15,
        'hedging': 0.15,
    },
    sensitivity=2.0,
    description='Synchronous text signals',
)

TEXT_REFINED = ScoringProfile(
    name='text_refined',
    weights={
        'burstiness': 0.13,
        'sentence_perplexity_variance': 0.11,
        'coherence': 0.10,
        'lexical_diversity': 0.09,
        'cross_entropy': 0.08,
        'char_entropy': 0.08,
        'ngram_repetition': 0.07,
        'word_entropy': 0.06,
        'stopword_density': 0.06,
        'syntactic_complexity': 0.05,
        'hedging': 0.05,
        'transition_smoothness': 0.04,
        'word_length_variance': 0.02,
        'discourse_marker_diversity': 0.02,
        'pronoun_person': 0.01,
        'punctuation_diversity': 0.0,
    },
    sensitivity=1.5,
    description='Full stylometric ensemble',
)

IMAGE_QUICK = ScoringProfile(
    name='image_quick',
    weights={
        'color_uniformity': 0.25,
        'texture_uniformity': 0.25,
        'frequency_uniformity': 0.20,
        'edge_strength': 0.15,
        'color_variance': 0.15,
    },
    sensitivity=1.2,
    metadata_confidence_boost=(0.3, 0.2),
    description='Cheap pixel statistics',
)

IMAGE_REFINED = ScoringProfile(
    name='image_refined',
    weights={
        'texture_smoothness': 0.13,
        'gradient_smoothness': 0.11,
        'frequency_uniformity': 0.09,
        'high_freq_content': 0.09,
        'noise_level': 0.08,
        'edge_consistency': 0.07,
        'lbp_texture': 0.07,
        'block_uniformity': 0.06,
        'color_uniformity': 0.06,
        'multiscale_consistency': 0.05,
        'texture_uniformity': 0.05,
        'spectral_high_band': 0.04,
        'lab_color_variance': 0.03,
        'histogram_entropy': 0.03,
        'artifact_score': 0.03,
        'noise_uniformity': 0.02,
        'url_score': 0.03,
        'context_score': 0.02,
    },
    exponent=1.2,
    sensitivity=1.2,
    metadata_score_boost=1.25,
    metadata_confidence_boost=(0.3, 0.2),
    description='Full pixel ensemble with metadata corroboration',
)

IMAGE_METADATA = ScoringProfile(
    name='image_metadata',
    weights={
        'url_score': 0.6,
        'context_score': 0.4,
    },
    sensitivity=1.2,
    description='Pixel data unavailable; URL and context only',
)

CLOUD = ScoringProfile(
    name='cloud',
    weights={
        'char_entropy': 0.20,
        'sentence_uniformity': 0.15,
        'burstiness': 0.15,
        'stopword_density': 0.10,
        'cross_entropy': 0.10,
        'coherence': 0.10,
        'ngram_repetition': 0.08,
        'hedging': 0.07,
        'list_density': 0.05,
        # image vectors
        'texture_smoothness': 0.15,
        'gradient_smoothness': 0.12,
        'noise_level': 0.10,
        'high_freq_content': 0.10,
        'color_uniformity': 0.08,
        'block_uniformity': 0.06,
        'url_score': 0.05,
        'context_score': 0.04,
    },
    sensitivity=1.2,
    description='Remote service profile; text and image vectors share it',
)

PROFILES = {p.name: p for p in (TEXT_QUICK, TEXT_REFINED, IMAGE_QUICK, IMAGE_REFINED, IMAGE_METADATA, CLOUD)}


def get_profile(name: str) -> ScoringProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise KeyError(f"Unknown scoring profile: {name}") from None
