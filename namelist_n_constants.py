""" Namelist variables and constants for the LES closure experiments """

# Grid configuration
dimension = 2              # number of spatial dimensions (2 or 3)
lims = (0.0, 1.0)          # domain limits, identical in every direction
ndns = 4096                # number of DNS grid cells per direction
nles = [64]                # LES grid cells per direction, one entry per resolution
boundary = "periodic"      # boundary condition in every direction

# Physics
Re = 6.0e3                 # Reynolds number, viscosity is 1/Re
kp = 20                    # peak wavenumber of the initial energy spectrum
ic_amplitude = 1.0         # RMS velocity of the initial condition
force_amplitude = 5.0      # Kolmogorov forcing f_x = A*sin(k*pi*y); 0 disables forcing
force_wavenumber = 8.0

# Time integration
method = "wray3"           # RK scheme: "wray3", "rk4" or "euler"
dt = 5.0e-5                # DNS time step
tburn = 0.5                # burn-in time before saving
tsim = 5.0                 # simulated time after the burn-in
savefreq = 50              # number of DNS steps between saved snapshots
cfl_check_freq = 1000      # print the CFL number every cfl_check_freq DNS steps

# Independent random streams, one per subsystem
seed_dns = 123456          # split into one seed per DNS trajectory
seed_theta_start = 234     # CNN parameter initialization
seed_prior = 345           # a-priori batch selection
seed_post = 456            # a-posteriori batch selection
ntrajectory_dns = 8        # first ntrain for training, then nvalid, rest for testing
ntrain = 6
nvalid = 1

# Filters and formulations
filter_names = ["FaceAverage", "VolumeAverage"]
project_orders = ["first", "last"]    # "first" is DIF, "last" is DCF

# CNN closure
cnn_radii = [2, 2, 2, 2, 2]
cnn_channels = [24, 24, 24, 24, dimension]
cnn_use_bias = [True, True, True, True, False]

# A-priori training
prior_optimizer = "adam"
prior_learning_rate = 1.0e-3
prior_lambda = 5.0e-5
prior_batchsize = 32
prior_nvalid = 32
prior_niter = 10000
prior_nepoch = None
prior_nupdate_callback = 20

# A-posteriori training
post_optimizer = "adam"
post_learning_rate = 1.0e-4
post_lambda = 5.0e-8
post_nunroll = 5
post_nsubstep = 5
post_ntrajectory = 5
post_nunroll_valid = 5
post_niter = 2000
post_nepoch = None
post_nupdate_callback = 10

# Smagorinsky grid search
smag_theta_range = (0.0, 0.3, 301)    # start, stop, number of values
smag_nunroll = 50
smag_nsubstep = 5

# Evaluation
# tsave: snapshot indices counted from the initial snapshot 0, i.e. the number of saved steps
# rolled out; each must lie in [1, nt - 1] with nt the number of saved snapshots
tsave = [5, 10, 25, 50, 100, 200, 500, 750, 1000, 1500, 2000]
t_dif = 1.0                # history horizon of the "first" (DIF) rollouts, which tend to blow up
eval_nsubstep = 5
eval_batchsize = 64

# Workflow switches
docreatedata = True        # regenerate datasets instead of loading them
doprior = True
dopost = True
dosmag = True
loadcheckpoint = False     # resume training from existing checkpoints

# output file names
outdir = "output"
data_name_format = "data_nles{nles}_{filter}_seed{seed}.zarr"
prior_name_format = "prior_nles{nles}_{filter}"
post_name_format = "post_nles{nles}_{filter}_{project_order}"
smag_name_format = "smag_nles{nles}_{filter}_{project_order}.nc"
checkpoint_name_format = "{name}_checkpoint"
errors_file_name = "eval_errors.nc"
history_file_name = "eval_history.nc"
