import numpy as np
import pytest
import torch

from mtpl_freq.builder import (
    TrainingConfig,
    homogeneous_fit,
    homogeneous_predict,
    init_network,
    load_network,
    predict_network,
    train_network,
    train_or_load_network,
)
from mtpl_freq.metrics import poisson_deviance

FAST = dict(epochs=15, batch_size=512, learning_rate=0.05, optimizer="adam", seed=7)


def test_training_config_validation():
    with pytest.raises(ValueError, match="optimizer"):
        TrainingConfig(optimizer="lbfgs")
    with pytest.raises(ValueError):
        TrainingConfig(epochs=0)
    with pytest.raises(ValueError):
        TrainingConfig(batch_size=0)
    with pytest.raises(ValueError):
        TrainingConfig(learning_rate=0.0)
    with pytest.raises(ValueError):
        TrainingConfig(validation_fraction=1.0)


@pytest.mark.parametrize("name", ["adam", "NAdam", "sgd", "rmsprop", "adagrad"])
def test_training_config_builds_optimizer(name):
    net = init_network(3, np.ones(4), np.ones(4), depth=1)
    optimizer = TrainingConfig(optimizer=name, learning_rate=0.01).make_optimizer(net.parameters())
    assert isinstance(optimizer, torch.optim.Optimizer)
    assert optimizer.param_groups[0]["lr"] == pytest.approx(0.01)


def test_glm_network_learns_signal(poisson_sample):
    X, y, exposure, _ = poisson_sample
    net = init_network(X.shape[1], y, exposure, depth=0, seed=7)

    history = train_network(net, X, y, exposure, TrainingConfig(**FAST))

    assert history.epochs == FAST["epochs"]
    assert len(history.val_loss) == FAST["epochs"]
    assert history.train_loss[-1] < history.train_loss[0]
    assert history.runtime_s > 0

    mu = predict_network(net, X, exposure)
    lam = homogeneous_fit(y, exposure)
    assert poisson_deviance(y, mu) < poisson_deviance(y, homogeneous_predict(lam, exposure))
    # depth 0: the weights approach the true GLM coefficients
    np.testing.assert_allclose(net.output_layer.weight.detach().numpy().ravel(), [0.6, -0.4], atol=0.15)


def test_deep_network_trains(poisson_sample):
    X, y, exposure, _ = poisson_sample
    net = init_network(X.shape[1], y, exposure, depth=2, dropout=0.05, seed=7)
    history = train_network(net, X, y, exposure, TrainingConfig(**FAST))
    assert np.isfinite(history.train_loss).all()
    assert not net.training


def test_no_validation_rows():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(200, 3)).astype(np.float32)
    exposure = np.ones(200)
    y = rng.poisson(0.2, size=200).astype(float)
    net = init_network(3, y, exposure, depth=1)
    history = train_network(net, X, y, exposure, TrainingConfig(epochs=2, batch_size=50, validation_fraction=0.0))
    assert history.val_loss == []
    assert len(history.train_loss) == 2


def test_training_is_deterministic(poisson_sample):
    X, y, exposure, _ = poisson_sample
    X, y, exposure = X[:3000], y[:3000], exposure[:3000]
    config = TrainingConfig(epochs=3, batch_size=256, learning_rate=0.01, seed=3)

    preds = []
    for _ in range(2):
        net = init_network(X.shape[1], y, exposure, depth=2, dropout=0.1, seed=config.seed)
        train_network(net, X, y, exposure, config)
        preds.append(predict_network(net, X, exposure))
    np.testing.assert_array_equal(preds[0], preds[1])


def test_training_rejects_bad_inputs(poisson_sample):
    X, y, exposure, _ = poisson_sample
    net = init_network(X.shape[1], y, exposure, depth=0)
    with pytest.raises(ValueError, match="same number of rows"):
        train_network(net, X[:10], y[:9], exposure[:10])
    bad = exposure[:10].copy()
    bad[3] = 0.0
    with pytest.raises(ValueError, match="Exposure"):
        train_network(net, X[:10], y[:10], bad)


def test_training_raises_on_nan_loss(poisson_sample):
    X, y, exposure, _ = poisson_sample
    X = X[:500].copy()
    X[0, 0] = np.nan
    net = init_network(X.shape[1], y[:500], exposure[:500], depth=1)
    with pytest.raises(FloatingPointError):
        train_network(net, X, y[:500], exposure[:500], TrainingConfig(epochs=2, batch_size=100, validation_fraction=0.0))


def test_predictions_are_positive_counts(poisson_sample):
    X, y, exposure, _ = poisson_sample
    net = init_network(X.shape[1], y, exposure, depth=1)
    mu = predict_network(net, X[:1000], exposure[:1000], batch_size=300)
    assert mu.shape == (1000,)
    assert (mu > 0).all()


def test_initial_network_is_homogeneous_model(poisson_sample):
    X, y, exposure, _ = poisson_sample
    net = init_network(X.shape[1], y, exposure, depth=0)
    with torch.no_grad():
        net.output_layer.weight.zero_()
    mu = predict_network(net, X[:50], exposure[:50])
    np.testing.assert_allclose(mu, homogeneous_fit(y, exposure) * exposure[:50], rtol=1e-5)


def test_train_or_load_network_round_trip(tmp_path, poisson_sample):
    X, y, exposure, _ = poisson_sample
    X, y, exposure = X[:2000], y[:2000], exposure[:2000]
    config = TrainingConfig(epochs=2, batch_size=256, seed=11)

    net, history, meta = train_or_load_network(
        "NN2", X, y, exposure, depth=2, config=config, model_dir=tmp_path
    )
    assert meta["units"] == [20, 15]
    assert meta["n_input"] == 2
    assert history.epochs == 2

    loaded, loaded_history, loaded_meta = train_or_load_network(
        "NN2", X, y, exposure, depth=2, config=config, model_dir=tmp_path
    )
    assert loaded_meta["saved_to"] == meta["saved_to"]
    assert loaded_history.train_loss == pytest.approx(history.train_loss)
    np.testing.assert_allclose(predict_network(loaded, X, exposure), predict_network(net, X, exposure), rtol=1e-6)

    direct, _, _ = load_network(meta["saved_to"])
    assert direct.hidden == (20, 15)


def test_train_or_load_network_keys_cache_on_validation_share(tmp_path, poisson_sample):
    X, y, exposure, _ = poisson_sample
    X, y, exposure = X[:2000], y[:2000], exposure[:2000]
    small = TrainingConfig(epochs=2, batch_size=256, seed=11, validation_fraction=0.1)
    large = TrainingConfig(epochs=2, batch_size=256, seed=11, validation_fraction=0.5)

    _, _, meta_small = train_or_load_network("NN1", X, y, exposure, depth=1, config=small, model_dir=tmp_path)
    _, _, meta_large = train_or_load_network("NN1", X, y, exposure, depth=1, config=large, model_dir=tmp_path)

    assert meta_small["saved_to"] != meta_large["saved_to"]
    assert meta_small["validation_fraction"] == pytest.approx(0.1)
    assert meta_large["validation_fraction"] == pytest.approx(0.5)
    assert len(list(tmp_path.glob("*.pt"))) == 2


def test_train_or_load_network_retrains_on_stale_meta(tmp_path, poisson_sample):
    X, y, exposure, _ = poisson_sample
    X, y, exposure = X[:2000], y[:2000], exposure[:2000]
    config = TrainingConfig(epochs=2, batch_size=256, seed=11)

    _, _, meta = train_or_load_network("NN1", X, y, exposure, depth=1, config=config, model_dir=tmp_path)
    payload = torch.load(meta["saved_to"], weights_only=True)
    payload["meta"]["validation_fraction"] = 0.5
    payload["history"]["train_loss"] = [123.0, 123.0]
    torch.save(payload, meta["saved_to"])

    _, history, reloaded = train_or_load_network("NN1", X, y, exposure, depth=1, config=config, model_dir=tmp_path)
    assert reloaded["validation_fraction"] == pytest.approx(0.1)
    assert history.train_loss != [123.0, 123.0]
